"""Fixed-size chunking of knowledge base documents."""

DEFAULT_CHUNK_SIZE = 1000


def chunk_text(content: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Split content into consecutive pieces of at most chunk_size characters.

    The pieces concatenate back to the original content exactly. Empty
    content yields no chunks.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not content:
        return []
    return [content[i : i + chunk_size] for i in range(0, len(content), chunk_size)]
