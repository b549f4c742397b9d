"""Record types for the quota-and-audit store."""
