"""PolicyBot - toggle a Keenetic router traffic policy from Telegram."""

__version__ = "0.1.0"
