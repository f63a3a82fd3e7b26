"""Entry point for ``python -m zapbot``."""

from zapbot.cli.commands import app

if __name__ == "__main__":
    app()
