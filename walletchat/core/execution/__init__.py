"""Transaction construction for native transfers."""
