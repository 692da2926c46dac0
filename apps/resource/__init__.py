"""Content-addressed resource store."""
