"""Discord cogs for Watchquota."""
