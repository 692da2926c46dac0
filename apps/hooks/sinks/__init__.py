"""Sink handlers, one per hook type."""
