import re
from typing import List, Tuple

CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse every whitespace run to a single space"""
    return _WHITESPACE.sub(" ", text or "").strip()


def chunk_spans(text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> List[Tuple[int, int]]:
    """
    Greedy sliding-window split of already-normalized text into (start, end) spans.

    A chunk ends after the last period past its midpoint, else after the last space,
    else at the hard size limit. The next chunk starts `overlap` characters before the
    previous end, so spans are contiguous and text[s0:e0] + text[e0:e1] + ... == text.
    """
    length = len(text)
    if length == 0:
        return []
    if length <= chunk_size:
        return [(0, length)]

    spans = []
    start = 0
    while start < length:
        end = start + chunk_size
        if end >= length:
            spans.append((start, length))
            break

        last_period = text.rfind(".", start, end)
        last_space = text.rfind(" ", start, end)
        if last_period > start + chunk_size // 2:
            end = last_period + 1
        elif last_space > start:
            end = last_space + 1

        spans.append((start, end))
        next_start = end - overlap
        # A short chunk must still move the window forward
        start = next_start if next_start > start else end

    return spans


def split_into_chunks(text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> List[str]:
    """Slices are stored unstripped so the non-overlapping parts rebuild the normalized text"""
    clean = normalize_text(text)
    return [clean[start:end] for start, end in chunk_spans(clean, chunk_size, overlap)]


def estimate_tokens(text: str) -> int:
    # ~4 characters per token
    return -(-len(text) // 4)
