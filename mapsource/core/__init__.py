"""Core application plumbing: settings, error taxonomy and logging setup."""
