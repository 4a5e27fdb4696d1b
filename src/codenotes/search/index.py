from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from ..models.annotation import Annotation
from .tokenize import tokenize


@dataclass
class PostingEntry:
    note_ids: set[str] = field(default_factory=set)
    frequencies: dict[str, int] = field(default_factory=dict)
    positions: dict[str, list[int]] = field(default_factory=dict)

    def add(self, note_id: str, position: int) -> None:
        self.note_ids.add(note_id)
        self.frequencies[note_id] = self.frequencies.get(note_id, 0) + 1
        self.positions.setdefault(note_id, []).append(position)

    def discard(self, note_id: str) -> None:
        self.note_ids.discard(note_id)
        self.frequencies.pop(note_id, None)
        self.positions.pop(note_id, None)


def _add_to(mapping: dict[str, set[str]], key: str, note_id: str) -> None:
    mapping.setdefault(key, set()).add(note_id)


def _discard_from(mapping: dict[str, set[str]], key: str, note_id: str) -> None:
    ids = mapping.get(key)
    if ids is None:
        return
    ids.discard(note_id)
    if not ids:
        del mapping[key]


class SearchIndex:
    """Inverted index over annotation content plus metadata indexes.

    ``content`` holds case-folded terms, ``exact`` case-preserved terms.
    Only live annotations are ever added.
    """

    def __init__(self) -> None:
        self.content: dict[str, PostingEntry] = {}
        self.exact: dict[str, PostingEntry] = {}
        self.authors: dict[str, set[str]] = {}
        self.files: dict[str, set[str]] = {}
        self.tags: dict[str, set[str]] = {}
        self.by_id: dict[str, Annotation] = {}
        self.terms_by_id: dict[str, set[str]] = {}
        self.exact_terms_by_id: dict[str, set[str]] = {}

    @classmethod
    def build(cls, annotations: Iterable[Annotation]) -> SearchIndex:
        index = cls()
        for annotation in annotations:
            if not annotation.is_deleted:
                index.add(annotation)
        return index

    def __len__(self) -> int:
        return len(self.by_id)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self.by_id

    def add(self, annotation: Annotation) -> None:
        note_id = annotation.id
        if note_id in self.by_id:
            self.remove(note_id)

        self.terms_by_id[note_id] = self._post(self.content, note_id, tokenize(annotation.content))
        self.exact_terms_by_id[note_id] = self._post(
            self.exact, note_id, tokenize(annotation.content, case_sensitive=True)
        )
        _add_to(self.authors, annotation.author, note_id)
        _add_to(self.files, annotation.file_path, note_id)
        for tag in annotation.tags:
            _add_to(self.tags, tag, note_id)
        self.by_id[note_id] = annotation

    def remove(self, note_id: str) -> bool:
        """Remove every trace of ``note_id``; empty postings are pruned."""
        annotation = self.by_id.pop(note_id, None)
        if annotation is None:
            return False

        self._unpost(self.content, note_id, self.terms_by_id.pop(note_id, set()))
        self._unpost(self.exact, note_id, self.exact_terms_by_id.pop(note_id, set()))
        _discard_from(self.authors, annotation.author, note_id)
        _discard_from(self.files, annotation.file_path, note_id)
        for tag in annotation.tags:
            _discard_from(self.tags, tag, note_id)
        return True

    def postings(self, case_sensitive: bool = False) -> dict[str, PostingEntry]:
        return self.exact if case_sensitive else self.content

    def estimate_size(self) -> int:
        """Rough in-memory footprint in bytes."""
        size = 0
        for term, entry in self.content.items():
            size += len(term) * 2 + len(entry.note_ids) * 50
        for annotation in self.by_id.values():
            size += len(annotation.content) * 2
        return size

    @staticmethod
    def _post(table: dict[str, PostingEntry], note_id: str, tokens: list[str]) -> set[str]:
        for position, token in enumerate(tokens):
            table.setdefault(token, PostingEntry()).add(note_id, position)
        return set(Counter(tokens))

    @staticmethod
    def _unpost(table: dict[str, PostingEntry], note_id: str, terms: set[str]) -> None:
        for term in terms:
            entry = table.get(term)
            if entry is None:
                continue
            entry.discard(note_id)
            if not entry.note_ids:
                del table[term]
