"""Split normalized statement text into overlapping windows for the AI tier."""

import logging
import uuid

from ledgerlift.models import TextChunk

logger = logging.getLogger(__name__)

# A cut point may move back at most this share of the window to land on whitespace
BACKTRACK_WINDOW = 0.2


def _find_cut(text: str, start: int, end: int, chunk_size: int) -> int:
    floor = start + int(chunk_size * (1 - BACKTRACK_WINDOW))
    for i in range(end, floor, -1):
        if text[i].isspace():
            return i
    return end


def chunk_text(
    text: str, chunk_size: int = 2000, overlap: int = 200, page_index: int = 0
) -> list[TextChunk]:
    """
    Cut text into windows of at most ``chunk_size`` characters.

    Consecutive windows share ``overlap`` characters. Every character of the
    input lands in at least one window and the loop always moves forward, so
    a huge overlap cannot stall it.

    Raises:
        ValueError: If chunk_size is not positive
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    overlap = max(0, overlap)

    chunks: list[TextChunk] = []
    start = 0
    index = 0

    while start < len(text):
        end = min(start + chunk_size, len(text))
        if end < len(text):
            end = _find_cut(text, start, end, chunk_size)

        chunks.append(
            TextChunk(
                chunk_id=f"chunk_{index}_{uuid.uuid4().hex[:8]}",
                chunk_index=index,
                text=text[start:end],
                page_index=page_index,
                start=start,
                end=end,
            )
        )
        index += 1

        if end >= len(text):
            break

        next_start = end - overlap
        start = next_start if next_start > start else end

    logger.debug(f"Chunked {len(text)} chars into {len(chunks)} chunks")
    return chunks
