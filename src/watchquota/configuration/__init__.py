"""
Configuration management for Watchquota.

- **app_configuration.py**: YAML configuration loader for the database path,
  retention windows, retry policy, maintenance interval and quota limits.
  Falls back to defaults on missing or malformed config files.
"""
