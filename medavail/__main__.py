"""
Entry point for ``python -m medavail``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
