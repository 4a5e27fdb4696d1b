"""Content-hash anchoring: fingerprint line ranges and relocate them after edits."""

from .document import Document, TextDocument, load_document
from .similarity import edit_distance, similarity
from .tracker import AnchorTracker, RelocationResult

__all__ = [
    "AnchorTracker",
    "Document",
    "RelocationResult",
    "TextDocument",
    "edit_distance",
    "load_document",
    "similarity",
]
