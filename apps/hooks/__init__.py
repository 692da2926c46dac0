"""Hook dispatch and the six sink handlers."""
