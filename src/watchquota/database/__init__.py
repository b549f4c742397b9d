"""
Database package for Watchquota.

Persistence for quotas, daily message counters, the audit log and command
usage counters, with retry, corruption recovery and integrity checking.

Public API:
    - Database (watchquota.database.database): the coordinator to construct
      once at startup and pass to every consumer
    - errors (watchquota.database.errors): exception taxonomy
"""
