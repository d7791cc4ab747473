"""Entry point for running glean-logger as a module.

Allows running the application with:
    python -m glean_logger

This delegates to the Typer CLI app.
"""

from glean_logger.cli import app

if __name__ == "__main__":
    app()
