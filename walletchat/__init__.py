"""Chat assistant core for a Solana wallet."""

__version__ = "0.1.0"
