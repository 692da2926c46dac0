"""Feed polling: cron labels, document parsing and the poller."""
