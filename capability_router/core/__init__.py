"""Process-level configuration: settings and logging."""
