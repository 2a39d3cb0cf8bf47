"""Key layout shared by every context store backend."""

CONTEXT_PREFIX = "mem:ctx"


def context_key(document_id: str) -> str:
    """Key holding a document's chunk payload."""
    return f"{CONTEXT_PREFIX}:{document_id}"


def status_key(document_id: str) -> str:
    """Key holding a document's status record."""
    return f"{CONTEXT_PREFIX}:{document_id}:status"


def deal_points_key(content_hash: str) -> str:
    """Cache key for deal points, shared by identical uploads."""
    return f"dealPoints:{content_hash}"
