"""Discord glue for Watchquota."""
