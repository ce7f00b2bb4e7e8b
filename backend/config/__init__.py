"""Environment-based configuration and logging setup."""
