from __future__ import annotations

import logging

from orasync.config import ConfigError
from orasync.fs.directory import Directory
from orasync.models import Target
from orasync.oracle.instance import DatabaseError
from orasync.sync.populate import SchemaDirPopulator


class SchemaDiscovery:
    """Adds subdirectories for schemas that exist live but not on disk."""

    def __init__(self, populator: SchemaDirPopulator, logger: logging.Logger | None = None) -> None:
        self.populator = populator
        self.logger = logger or logging.getLogger(__name__)

    def _declared_schemas(self, subdirs: list[Directory]) -> set[str]:
        declared: set[str] = set()
        for subdir in subdirs:
            try:
                name = subdir.declared_schema()
            except ConfigError as exc:
                self.logger.warning("Ignoring %s: %s", subdir, exc)
                continue
            if name:
                declared.add(name)
        return declared

    def discover(self, directory: Directory, subdirs: list[Directory], target: Target) -> int:
        declared = self._declared_schemas(subdirs)
        try:
            live_names = target.instance.schema_names()
        except DatabaseError as exc:
            self.logger.error("Unable to list schemas on %s: %s", target.instance, exc)
            return 1

        for name in live_names:
            if name in declared or not target.options.wants_schema(name):
                continue
            try:
                schema = target.instance.schema(name)
            except DatabaseError as exc:
                self.logger.error("Unable to read schema %s: %s", name, exc)
                return 1
            if schema is None:
                continue
            self.logger.info("Found new schema %s on %s", name, target.instance)
            ret = self.populator.populate(schema, target.instance, directory, as_subdirectory=True)
            if ret != 0:
                return ret
        return 0
