"""Background schedulers for Watchquota."""
