"""AI completion providers."""
