"""Watchquota: daily message quotas for watchlisted Discord members."""
