from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional, Protocol

from ..models.annotation import Annotation, LifecycleState


class AnnotationStore(Protocol):
    """Authoritative annotation storage. There is no hard delete."""

    def save(self, annotation: Annotation) -> None: ...

    def load_all(self, file_path: str) -> list[Annotation]: ...

    def load_by_id(self, annotation_id: str) -> Optional[Annotation]: ...

    def load_corpus(self, include_deleted: bool = False) -> list[Annotation]: ...


class SqliteAnnotationStore:
    """One row per annotation; the full model lives in payload_json."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS annotations(
                  id TEXT PRIMARY KEY,
                  file_path TEXT NOT NULL,
                  state TEXT NOT NULL,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL,
                  payload_json TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_annotations_file_path
                  ON annotations(file_path);
                """
            )
            conn.commit()
        finally:
            conn.close()

    def save(self, annotation: Annotation) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO annotations(id, file_path, state, created_at, updated_at, payload_json)
                    VALUES(?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                      file_path=excluded.file_path,
                      state=excluded.state,
                      updated_at=excluded.updated_at,
                      payload_json=excluded.payload_json
                    """,
                    (
                        annotation.id,
                        annotation.file_path,
                        annotation.state.value,
                        annotation.created_at.isoformat(),
                        annotation.updated_at.isoformat(),
                        annotation.model_dump_json(),
                    ),
                )
        finally:
            conn.close()

    def load_all(self, file_path: str) -> list[Annotation]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT payload_json FROM annotations WHERE file_path = ? ORDER BY created_at, rowid",
                (file_path,),
            ).fetchall()
        finally:
            conn.close()
        return [Annotation.model_validate_json(row["payload_json"]) for row in rows]

    def load_by_id(self, annotation_id: str) -> Optional[Annotation]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT payload_json FROM annotations WHERE id = ?", (annotation_id,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return Annotation.model_validate_json(row["payload_json"])

    def load_corpus(self, include_deleted: bool = False) -> list[Annotation]:
        sql = "SELECT payload_json FROM annotations"
        params: tuple = ()
        if not include_deleted:
            sql += " WHERE state = ?"
            params = (LifecycleState.ACTIVE.value,)
        sql += " ORDER BY created_at, rowid"
        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [Annotation.model_validate_json(row["payload_json"]) for row in rows]

    def count(self) -> int:
        conn = self._connect()
        try:
            row = conn.execute("SELECT COUNT(1) AS n FROM annotations").fetchone()
            return int(row["n"]) if row is not None else 0
        finally:
            conn.close()
