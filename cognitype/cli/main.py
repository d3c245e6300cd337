"""
Typer CLI for the cognitype analysis service.

Commands:
    cognitype init-db             - Create database tables
    cognitype analyze USER_ID     - Run the full cognitive analysis for a user
    cognitype profile USER_ID     - Show stored profile, fingerprint, energy and points
    cognitype thresholds          - Show effective analysis thresholds

Usage:
    cognitype --help
    cognitype analyze 3f9a2c1e-...
    cognitype analyze 3f9a2c1e-... --json
"""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import fields

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from cognitype.config import Settings, get_settings
from cognitype.core.exceptions import (
    ClassifierQuotaExhaustedError,
    ClassifierRateLimitedError,
    ExternalClassifierError,
    PersistenceConflictError,
)
from cognitype.core.feature_flags import get_flags
from cognitype.core.thresholds import AnalysisThresholds

app = typer.Typer(
    help="cognitype: cognitive type analysis from quiz telemetry",
    no_args_is_help=True,
)

console = Console()

LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"


def configure_logging(settings: Settings) -> None:
    """Route loguru to stderr and, when configured, a rotating log file."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, format=LOG_FORMAT)
    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            rotation="10 MB",
            retention=5,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}",
        )


@app.callback()
def main_callback() -> None:
    """Cognitive type analysis over quiz telemetry."""
    configure_logging(get_settings())


def _effective_thresholds() -> AnalysisThresholds:
    from cognitype.db.database import session_scope
    from cognitype.db.repository import EventStore

    base = AnalysisThresholds.from_settings(get_settings())
    with session_scope() as session:
        return base.with_overrides(EventStore(session).system_settings())


# ========================================
# Commands
# ========================================


@app.command("init-db")
def init_db_command() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from cognitype.db.database import init_db

    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


@app.command("analyze")
def analyze_command(
    user_id: str = typer.Argument(..., help="User to analyse"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw outcome as JSON"),
) -> None:
    """
    Run feature extraction, stability scoring, fingerprinting, energy analysis
    and AI classification for one user, then store the results.
    """
    from cognitype.db.database import get_session_factory
    from cognitype.integrations.classifier_client import GatewayClassifier
    from cognitype.pipeline.analysis_pipeline import CognitivePipeline

    settings = get_settings()
    if not settings.has_ai_configured():
        rprint("[red]✗[/red] AI gateway is not configured (set AI_GATEWAY_API_KEY)")
        raise typer.Exit(code=1)

    async def _run():
        async with GatewayClassifier.from_settings(settings) as classifier:
            pipeline = CognitivePipeline(
                get_session_factory(),
                classifier,
                thresholds=AnalysisThresholds.from_settings(settings),
                history_window=settings.history_window,
            )
            return await pipeline.run(user_id)

    try:
        outcome = asyncio.run(_run())
    except ClassifierRateLimitedError:
        rprint("[yellow]⚠[/yellow] Rate limited, please try again later.")
        raise typer.Exit(code=2)
    except ClassifierQuotaExhaustedError:
        rprint("[red]✗[/red] AI credits exhausted.")
        raise typer.Exit(code=2)
    except ExternalClassifierError as e:
        rprint(f"[red]✗[/red] Classification failed: {e}")
        raise typer.Exit(code=1)
    except PersistenceConflictError as e:
        rprint(f"[yellow]⚠[/yellow] {e}. Another analysis ran concurrently; re-run to retry.")
        raise typer.Exit(code=3)

    if as_json:
        console.print_json(json.dumps(outcome.to_dict(), default=str))
        return

    if not outcome.completed:
        rprint(f"[yellow]⚠[/yellow] {outcome.message}")
        return

    data = outcome.to_dict()
    table = Table(title=f"Cognitive Analysis: {user_id}", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Cognitive type", data["cognitive_type"])
    table.add_row("Confidence", f"{data['confidence_score']:.0%}")
    table.add_row("Stability (CSI)", f"{data['stability_index']} ({data['stability_label']})")
    table.add_row("Predictability (CPI)", f"{data['cognitive_predictability_index']} ({data['cpi_label']})")
    table.add_row("Drift", "yes" if data["drift_detected"] else "no")
    table.add_row("At risk", "[red]yes[/red]" if data["at_risk"] else "no")
    table.add_row("Fingerprint", data["fingerprint_id"])
    table.add_row("Weak topics", ", ".join(outcome.features.weak_topics) or "-")
    console.print(table)
    rprint(f"\n[dim]{data['reasoning']}[/dim]")


@app.command("profile")
def profile_command(
    user_id: str = typer.Argument(..., help="User to show"),
) -> None:
    """Show the stored cognitive profile, fingerprint, energy profile and points."""
    from cognitype.db.database import session_scope
    from cognitype.db.repository import ProfileRepository

    with session_scope() as session:
        repo = ProfileRepository(session)
        profile, _ = repo.get_cognitive_profile(user_id)
        fingerprint, _ = repo.get_fingerprint(user_id)
        energy, _ = repo.get_energy_profile(user_id)
        points, _ = repo.get_gamification(user_id)

    if profile is None:
        rprint(f"[yellow]⚠[/yellow] No cognitive profile for {user_id}. Run 'cognitype analyze' first.")
        return

    table = Table(title=f"Profile: {user_id}", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Cognitive type", profile.cognitive_type or "-")
    table.add_row("Previous types", ", ".join(p["type"] for p in profile.previous_types) or "-")
    table.add_row("At risk", "[red]yes[/red]" if profile.at_risk else "no")
    if fingerprint:
        table.add_row("Fingerprint", fingerprint.fingerprint_id)
        table.add_row("CPI", f"{fingerprint.cognitive_predictability_index} ({fingerprint.cpi_label})")
        table.add_row("Hesitation", f"{fingerprint.hesitation_burst_frequency:.3f}")
    if energy:
        table.add_row("Best hour", str(energy.best_performance_hour))
        table.add_row("Fatigue point", f"{energy.avg_session_fatigue_point_minutes} min")
    table.add_row("Points", str(points.total_points))
    table.add_row("Streak", f"{points.current_streak} (longest {points.longest_streak})")
    table.add_row("Badges", ", ".join(sorted(points.badges)) or "-")
    console.print(table)


@app.command("thresholds")
def thresholds_command() -> None:
    """Show analysis thresholds after admin overrides, and the enabled pipeline stages."""
    thresholds = _effective_thresholds()

    table = Table(title="Analysis Thresholds", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Value", justify="right")
    for f in fields(thresholds):
        table.add_row(f.name, str(getattr(thresholds, f.name)))
    console.print(table)

    flags = Table(title="Pipeline Stages", show_header=True)
    flags.add_column("Flag", style="cyan")
    flags.add_column("Enabled", justify="right")
    for name, enabled in get_flags().as_dict().items():
        flags.add_row(name, "[green]yes[/green]" if enabled else "[red]no[/red]")
    console.print(flags)


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
