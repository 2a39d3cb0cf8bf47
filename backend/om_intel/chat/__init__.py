"""Chat over ingested documents."""
