from __future__ import annotations

import logging

from orasync.diff.schema_diff import AlterTable, CreateTable, DropTable, RenameTable, TableDiff
from orasync.fs.directory import Directory
from orasync.models import PullReport, SchemaSnapshot
from orasync.normalize.ddl_normalizer import DdlNormalizer
from orasync.oracle.instance import DatabaseError, OracleInstance
from orasync.store.sql_files import FileStoreError, SqlFileStore


class UnsupportedDiffError(RuntimeError):
    """A diff the files cannot follow; stops the whole run."""


class SchemaDiffApplier:
    def __init__(
        self,
        instance: OracleInstance,
        normalizer: DdlNormalizer,
        report: PullReport,
        logger: logging.Logger | None = None,
    ) -> None:
        self.instance = instance
        self.normalizer = normalizer
        self.report = report
        self.logger = logger or logging.getLogger(__name__)

    def _definition_text(self, to_schema: SchemaSnapshot, table_name: str) -> str:
        return self.normalizer.normalize(self.instance.show_create_table(to_schema.name, table_name))

    def apply(self, directory: Directory, diff: TableDiff, to_schema: SchemaSnapshot) -> int:
        store = SqlFileStore(directory.path)

        if isinstance(diff, RenameTable):
            raise UnsupportedDiffError(
                f"Table renames not yet supported: {diff.from_table.name} -> {diff.to_table.name}"
            )
        if not isinstance(diff, (CreateTable, DropTable, AlterTable)):
            raise UnsupportedDiffError(f"Unsupported diff type {type(diff).__name__}")

        table_name = diff.table.name
        path = store.path_for(table_name)

        if isinstance(diff, DropTable):
            try:
                store.delete(table_name)
            except FileStoreError as exc:
                self.logger.error("%s", exc)
                return 1
            self.report.deleted_files.append(path)
            self.logger.info("    Deleted %s -- table no longer exists", path)
            return 0

        try:
            content = self._definition_text(to_schema, table_name)
        except DatabaseError as exc:
            self.logger.error("Unable to generate definition of %s.%s: %s", to_schema.name, table_name, exc)
            return 1

        try:
            length = store.write(table_name, content)
        except FileStoreError as exc:
            self.logger.error("%s", exc)
            return 1

        if isinstance(diff, CreateTable):
            self.report.added_files.append(path)
            self.logger.info("    Wrote %s (%s bytes) -- new table", path, length)
        else:
            self.report.modified_files.append(path)
            self.logger.info(
                "    Wrote %s (%s bytes) -- updated file to reflect table alterations", path, length
            )
        return 0
