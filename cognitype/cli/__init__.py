"""
CLI - Typer entry point (`cognitype`).
"""

from .main import app, configure_logging, run

__all__ = ["app", "configure_logging", "run"]
