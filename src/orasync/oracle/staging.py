from __future__ import annotations

import logging
import re
from pathlib import Path

from orasync.models import SchemaSnapshot
from orasync.oracle.instance import DatabaseError, OracleInstance
from orasync.store.sql_files import split_statements

ALLOWED_STATEMENT_PATTERN = re.compile(
    r"(?is)^\s*(?:CREATE\s+(?:GLOBAL\s+TEMPORARY\s+)?TABLE"
    r"|CREATE\s+(?:UNIQUE\s+|BITMAP\s+)?INDEX"
    r"|COMMENT\s+ON\s+(?:TABLE|COLUMN)"
    r"|ALTER\s+TABLE)\b"
)
_IDENTIFIER = r'(?:"[^"]+"|[A-Z][A-Z0-9_$#]*)'

# A dot right after the object name means it belongs to another schema.
QUALIFIED_NAME_PATTERNS = (
    re.compile(rf"(?is)^\s*(?:CREATE\s+(?:GLOBAL\s+TEMPORARY\s+)?TABLE|ALTER\s+TABLE)\s+{_IDENTIFIER}\s*\."),
    re.compile(rf"(?is)^\s*CREATE\s+(?:UNIQUE\s+|BITMAP\s+)?INDEX\s+{_IDENTIFIER}\s*\."),
    re.compile(
        rf"(?is)^\s*CREATE\s+(?:UNIQUE\s+|BITMAP\s+)?INDEX\s+{_IDENTIFIER}\s+ON\s+{_IDENTIFIER}\s*\."
    ),
    re.compile(rf"(?is)^\s*COMMENT\s+ON\s+TABLE\s+{_IDENTIFIER}\s*\."),
    re.compile(rf"(?is)^\s*COMMENT\s+ON\s+COLUMN\s+{_IDENTIFIER}\s*\.\s*{_IDENTIFIER}\s*\."),
)


class StagingError(RuntimeError):
    pass


class CleanupError(StagingError):
    pass


def _check_statement(path: Path, statement: str) -> None:
    if not ALLOWED_STATEMENT_PATTERN.match(statement):
        first_line = statement.strip().splitlines()[0]
        raise StagingError(f"{path}: unsupported statement in table file: {first_line}")
    if any(pattern.match(statement) for pattern in QUALIFIED_NAME_PATTERNS):
        raise StagingError(f"{path}: object names must not be schema-qualified")


class TemporarySchema:
    """Staging schema holding the on-disk definitions of one leaf directory.

    Entering creates the staging user and applies every table file. Leaving
    always drops the user again. A failed drop raises :class:`CleanupError`
    only when the enclosed block succeeded; otherwise it is logged and the
    original exception keeps propagating.
    """

    def __init__(
        self,
        instance: OracleInstance,
        name: str,
        sql_files: list[Path],
        tablespace: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.instance = instance
        self.name = name
        self.sql_files = sql_files
        self.tablespace = tablespace
        self.logger = logger or logging.getLogger(__name__)
        self._held = False

    def __enter__(self) -> "TemporarySchema":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            self.release()
        except CleanupError as cleanup_exc:
            if exc is None:
                raise
            self.logger.error("%s", cleanup_exc)
        return False

    def _read_statements(self) -> list[tuple[Path, str]]:
        pending: list[tuple[Path, str]] = []
        for path in self.sql_files:
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise StagingError(f"Unable to read {path}: {exc}") from exc
            for statement in split_statements(text):
                _check_statement(path, statement)
                pending.append((path, statement))
        return pending

    def _apply_definitions(self) -> None:
        pending = self._read_statements()
        passes = 0
        while pending:
            passes += 1
            failed: list[tuple[Path, str, DatabaseError]] = []
            for path, statement in pending:
                try:
                    self.instance.execute_in_schema(self.name, statement)
                except DatabaseError as exc:
                    failed.append((path, statement, exc))
            if len(failed) == len(pending):
                path, _, exc = failed[0]
                raise StagingError(
                    f"Unable to apply {path} to temporary schema {self.name}: {exc}"
                )
            pending = [(path, statement) for path, statement, _ in failed]
        if passes > 1:
            self.logger.debug("Temporary schema %s loaded in %s passes.", self.name, passes)

    def acquire(self) -> None:
        try:
            existing = self.instance.schema(self.name)
            if existing is not None and existing.tables:
                raise StagingError(
                    f"Temporary schema {self.name} already exists and has tables; "
                    "drop it or choose another temp_schema."
                )
            if existing is None:
                self.instance.create_schema(self.name, self.tablespace)
        except DatabaseError as exc:
            raise StagingError(f"Unable to create temporary schema {self.name}: {exc}") from exc
        self._held = True

        try:
            self._apply_definitions()
        except Exception:
            try:
                self.release()
            except CleanupError as cleanup_exc:
                self.logger.error("%s", cleanup_exc)
            raise

    def snapshot(self) -> SchemaSnapshot:
        try:
            schema = self.instance.schema(self.name)
        except DatabaseError as exc:
            raise StagingError(f"Unable to read temporary schema {self.name}: {exc}") from exc
        if schema is None:
            raise StagingError(f"Temporary schema {self.name} disappeared.")
        return schema

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            self.instance.drop_schema(self.name)
        except DatabaseError as exc:
            raise CleanupError(f"Unable to clean up temporary schema {self.name}: {exc}") from exc
