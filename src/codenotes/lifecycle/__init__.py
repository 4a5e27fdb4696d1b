"""Annotation lifecycle: create, edit, soft-delete, reposition."""

from .author import AuthorResolver, StaticAuthorResolver, SystemAuthorResolver
from .manager import AnnotationChange, LifecycleManager
from .store import AnnotationStore, SqliteAnnotationStore
from .tags import PREDEFINED_CATEGORIES, normalize_tag, normalize_tags, validate_tag

__all__ = [
    "AnnotationChange",
    "AnnotationStore",
    "AuthorResolver",
    "LifecycleManager",
    "PREDEFINED_CATEGORIES",
    "SqliteAnnotationStore",
    "StaticAuthorResolver",
    "SystemAuthorResolver",
    "normalize_tag",
    "normalize_tags",
    "validate_tag",
]
