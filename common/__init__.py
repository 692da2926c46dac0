"""Shared infrastructure for FeedImpact: config, logging, HTTP, retry and pools."""
