"""Final transcript lines: coalescing of streaming revisions; in-memory session log."""
from .coalescer import TranscriptCoalescer, TranscriptEntry, jaccard_similarity
from .log import TranscriptLog

__all__ = ["TranscriptCoalescer", "TranscriptEntry", "TranscriptLog", "jaccard_similarity"]
