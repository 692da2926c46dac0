"""Scheduling: per-feed polling jobs and daily maintenance jobs."""
