"""Limi CLI entry point."""

from limi.cli import app

if __name__ == "__main__":
    app()
