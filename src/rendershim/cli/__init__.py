"""rendershim command line interface."""

from rendershim.cli.app import app

__all__ = ["app"]
