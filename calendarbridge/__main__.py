"""
Convenience entry point for running calendarbridge directly.

Usage: python -m calendarbridge [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
