"""Remote record/photo commands for a dash cam over Telegram and DingTalk."""

__version__ = "0.1.0"
