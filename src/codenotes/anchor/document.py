from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence


class Document(Protocol):
    """Read-only view of a text file's current lines."""

    @property
    def file_path(self) -> str: ...

    def line_count(self) -> int: ...

    def line_text(self, index: int) -> str: ...


@dataclass(frozen=True)
class TextDocument:
    file_path: str
    lines: tuple[str, ...]

    @classmethod
    def from_text(cls, file_path: str, text: str) -> TextDocument:
        return cls(file_path=file_path, lines=tuple(text.splitlines()))

    @classmethod
    def from_lines(cls, file_path: str, lines: Sequence[str]) -> TextDocument:
        return cls(file_path=file_path, lines=tuple(lines))

    def line_count(self) -> int:
        return len(self.lines)

    def line_text(self, index: int) -> str:
        if index < 0 or index >= len(self.lines):
            raise IndexError(f"Line {index} out of range for {self.file_path} ({len(self.lines)} lines)")
        return self.lines[index]


def load_document(path: Path, *, file_path: str | None = None) -> TextDocument:
    """Read a UTF-8 text file into a TextDocument.

    ``file_path`` overrides the identity recorded on annotations; it defaults
    to the resolved absolute path.
    """
    data = path.read_bytes()
    if b"\x00" in data:
        raise ValueError(f"Refusing to annotate binary file: {path}")
    text = data.decode("utf-8", errors="replace")
    return TextDocument.from_text(file_path or str(path.resolve()), text)
