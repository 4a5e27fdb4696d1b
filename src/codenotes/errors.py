"""Error taxonomy for codenotes.

Callers distinguish failures by type; every error raised by the core
derives from NotesError.
"""


class NotesError(Exception):
    """Base class for codenotes errors."""


class InvalidRangeError(NotesError, ValueError):
    """Line range is negative, inverted, or past the end of the document."""


class NotFoundError(NotesError, LookupError):
    """No annotation with the requested id exists."""

    def __init__(self, annotation_id: str, file_path: str | None = None):
        self.annotation_id = annotation_id
        self.file_path = file_path
        where = f" in {file_path}" if file_path else ""
        super().__init__(f"Annotation {annotation_id} not found{where}")


class AlreadyDeletedError(NotesError):
    """Attempted to mutate a soft-deleted annotation."""

    def __init__(self, annotation_id: str):
        self.annotation_id = annotation_id
        super().__init__(f"Annotation {annotation_id} is already deleted")


class InvalidTagError(NotesError, ValueError):
    """Tag failed validation."""

    def __init__(self, tag: str, reason: str):
        self.tag = tag
        self.reason = reason
        super().__init__(f"Invalid tag {tag!r}: {reason}")


class InvalidQueryError(NotesError, ValueError):
    """Search query cannot be executed (e.g. malformed regular expression)."""


class FileMismatchError(NotesError, ValueError):
    """Create parameters name a different file than the document being annotated."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Annotation targets {expected!r} but the document is {actual!r}")
