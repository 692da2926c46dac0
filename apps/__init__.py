"""FeedImpact application packages."""
