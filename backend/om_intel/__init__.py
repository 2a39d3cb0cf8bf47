"""OM Intel: offering memorandum ingestion and context-gated chat."""
