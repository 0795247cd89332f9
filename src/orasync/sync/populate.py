from __future__ import annotations

import logging
from pathlib import Path

from orasync.config import ConfigError, option_identifier, write_option_file
from orasync.fs.directory import Directory
from orasync.models import PullReport, SchemaSnapshot
from orasync.normalize.ddl_normalizer import DdlNormalizer
from orasync.oracle.instance import DatabaseError, OracleInstance
from orasync.store.sql_files import FileStoreError, SqlFileStore, safe_name


class SchemaDirPopulator:
    """Writes a schema directory from scratch: option file plus one file per table."""

    def __init__(
        self,
        normalizer: DdlNormalizer,
        report: PullReport,
        logger: logging.Logger | None = None,
    ) -> None:
        self.normalizer = normalizer
        self.report = report
        self.logger = logger or logging.getLogger(__name__)

    def _subdirectory_for(self, parent: Directory, schema_name: str) -> Path:
        # Sanitized names can collide (e.g. "A B" and "A_B"); later schemas get a suffix.
        base = safe_name(schema_name)
        candidate = parent.path / base
        suffix = 1
        while True:
            owner = Directory(candidate).declared_schema() if candidate.is_dir() else None
            if owner is None or owner == schema_name:
                return candidate
            suffix += 1
            renamed = parent.path / f"{base}-{suffix}"
            self.logger.warning(
                "Directory %s already holds schema %s; using %s for schema %s",
                candidate,
                owner,
                renamed,
                schema_name,
            )
            candidate = renamed

    def populate(
        self,
        schema: SchemaSnapshot,
        instance: OracleInstance,
        parent: Directory,
        as_subdirectory: bool,
    ) -> int:
        target_path = parent.path
        try:
            if as_subdirectory:
                target_path = self._subdirectory_for(parent, schema.name)
            directory = Directory(target_path)
            if as_subdirectory:
                if target_path.exists() and (directory.option_file.exists() or directory.sql_files()):
                    self.logger.error(
                        "Cannot use %s for schema %s: directory already has content",
                        target_path,
                        schema.name,
                    )
                    return 1
                created = not target_path.exists()
                target_path.mkdir(parents=True, exist_ok=True)
                if created:
                    self.report.created_dirs.append(target_path)
                write_option_file(directory.option_file, {"schema": option_identifier(schema.name)})
            else:
                options = dict(directory.own_options())
                options["schema"] = option_identifier(schema.name)
                write_option_file(directory.option_file, options)
        except (OSError, ConfigError) as exc:
            self.logger.error("Unable to prepare directory %s: %s", target_path, exc)
            return 1

        self.logger.info("Populating %s...", target_path)
        store = SqlFileStore(target_path)
        for table in schema.tables:
            try:
                content = self.normalizer.normalize(instance.show_create_table(schema.name, table.name))
                length = store.write(table.name, content)
            except (DatabaseError, FileStoreError) as exc:
                self.logger.error("Unable to populate %s.%s: %s", schema.name, table.name, exc)
                return 1
            path = store.path_for(table.name)
            self.report.added_files.append(path)
            self.logger.info("    Wrote %s (%s bytes)", path, length)
        return 0
