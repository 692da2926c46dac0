"""Daily maintenance jobs."""
