"""Object storage access."""
