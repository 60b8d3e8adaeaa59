"""Run a command and report its outcome to a Telegram chat."""

__version__ = "0.1.0"
