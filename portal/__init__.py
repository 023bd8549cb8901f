"""Game community portal: accounts, sessions, player roster and news."""

__version__ = "1.0.0"
