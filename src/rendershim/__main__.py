"""``python -m rendershim``."""

from rendershim.cli.app import app

if __name__ == "__main__":
    app()
