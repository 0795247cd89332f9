from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from orasync.config import SyncOptions
    from orasync.oracle.instance import OracleInstance


@dataclass(frozen=True)
class Column:
    name: str
    data_type: str
    data_length: int | None = None
    data_precision: int | None = None
    data_scale: int | None = None
    nullable: bool = True
    default: str | None = None


@dataclass(frozen=True)
class Constraint:
    # name is None when Oracle generated it (SYS_C...).
    name: str | None
    constraint_type: str
    columns: tuple[str, ...]
    referenced_table: str | None = None


@dataclass(frozen=True)
class Index:
    name: str | None
    unique: bool
    columns: tuple[str, ...]


@dataclass(frozen=True)
class Table:
    name: str
    columns: tuple[Column, ...] = ()
    constraints: frozenset[Constraint] = frozenset()
    indexes: frozenset[Index] = frozenset()


@dataclass(frozen=True)
class SchemaSnapshot:
    name: str
    tables: tuple[Table, ...] = ()

    def table(self, name: str) -> Table | None:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    @property
    def table_names(self) -> list[str]:
        return [table.name for table in self.tables]


@dataclass(frozen=True)
class Target:
    instance: "OracleInstance"
    schema_names: list[str]
    options: "SyncOptions"


@dataclass
class PullReport:
    added_files: list[Path] = field(default_factory=list)
    modified_files: list[Path] = field(default_factory=list)
    deleted_files: list[Path] = field(default_factory=list)
    created_dirs: list[Path] = field(default_factory=list)
    deleted_dirs: list[Path] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.added_files
            or self.modified_files
            or self.deleted_files
            or self.created_dirs
            or self.deleted_dirs
        )
