"""Table-level differences between two schema snapshots.

``compute_diff(from_schema, to_schema)`` lists what has to happen to
``from_schema`` for it to match ``to_schema``. Creates and alters come first,
in ``to_schema`` table order, followed by drops in ``from_schema`` order.
Renames are never inferred; a renamed table shows up as a drop plus a create.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from orasync.models import SchemaSnapshot, Table


@dataclass(frozen=True)
class CreateTable:
    table: Table


@dataclass(frozen=True)
class DropTable:
    table: Table


@dataclass(frozen=True)
class AlterTable:
    from_table: Table
    to_table: Table

    @property
    def table(self) -> Table:
        return self.to_table


@dataclass(frozen=True)
class RenameTable:
    from_table: Table
    to_table: Table

    @property
    def table(self) -> Table:
        return self.to_table


TableDiff = Union[CreateTable, DropTable, AlterTable, RenameTable]


def table_signature(table: Table) -> tuple[object, ...]:
    # Column order is significant; constraints and indexes are sets.
    return (table.columns, table.constraints, table.indexes)


def compute_diff(from_schema: SchemaSnapshot, to_schema: SchemaSnapshot) -> list[TableDiff]:
    from_tables = {table.name: table for table in from_schema.tables}
    to_names = {table.name for table in to_schema.tables}

    diffs: list[TableDiff] = []
    for to_table in to_schema.tables:
        from_table = from_tables.get(to_table.name)
        if from_table is None:
            diffs.append(CreateTable(table=to_table))
        elif table_signature(from_table) != table_signature(to_table):
            diffs.append(AlterTable(from_table=from_table, to_table=to_table))

    for from_table in from_schema.tables:
        if from_table.name not in to_names:
            diffs.append(DropTable(table=from_table))
    return diffs
