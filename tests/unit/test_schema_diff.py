from __future__ import annotations

from orasync.diff.schema_diff import AlterTable, CreateTable, DropTable, compute_diff
from orasync.models import Column, Constraint, Index, SchemaSnapshot, Table


def _table(name: str, *columns: str, constraints=(), indexes=()) -> Table:
    return Table(
        name=name,
        columns=tuple(Column(name=column, data_type="NUMBER") for column in columns),
        constraints=frozenset(constraints),
        indexes=frozenset(indexes),
    )


def test_diff_orders_creates_and_alters_before_drops() -> None:
    from_schema = SchemaSnapshot(
        name="ORASYNC_TMP",
        tables=(_table("A", "ID"), _table("B", "ID"), _table("OLD", "ID")),
    )
    to_schema = SchemaSnapshot(
        name="APP",
        tables=(_table("A", "ID"), _table("B", "ID", "QTY"), _table("C", "ID")),
    )

    diffs = compute_diff(from_schema, to_schema)

    assert [type(diff) for diff in diffs] == [AlterTable, CreateTable, DropTable]
    assert [diff.table.name for diff in diffs] == ["B", "C", "OLD"]


def test_identical_schemas_have_no_diff() -> None:
    tables = (_table("A", "ID"), _table("B", "ID", "NAME"))

    assert compute_diff(SchemaSnapshot("X", tables), SchemaSnapshot("Y", tables)) == []


def test_column_order_matters() -> None:
    before = SchemaSnapshot("X", (_table("A", "ID", "NAME"),))
    after = SchemaSnapshot("Y", (_table("A", "NAME", "ID"),))

    assert [type(diff) for diff in compute_diff(before, after)] == [AlterTable]


def test_generated_constraint_names_are_ignored_but_named_ones_count() -> None:
    generated = Constraint(name=None, constraint_type="P", columns=("ID",))
    named = Constraint(name="ORDERS_PK", constraint_type="P", columns=("ID",))

    staged = SchemaSnapshot("X", (_table("ORDERS", "ID", constraints=[generated]),))
    live_generated = SchemaSnapshot("Y", (_table("ORDERS", "ID", constraints=[generated]),))
    live_named = SchemaSnapshot("Y", (_table("ORDERS", "ID", constraints=[named]),))

    assert compute_diff(staged, live_generated) == []
    assert [type(diff) for diff in compute_diff(staged, live_named)] == [AlterTable]


def test_index_changes_are_alterations() -> None:
    index = Index(name="ORDERS_IX1", unique=False, columns=("ID",))
    before = SchemaSnapshot("X", (_table("ORDERS", "ID"),))
    after = SchemaSnapshot("Y", (_table("ORDERS", "ID", indexes=[index]),))

    (diff,) = compute_diff(before, after)

    assert isinstance(diff, AlterTable)
    assert diff.from_table.indexes == frozenset()
    assert diff.to_table.indexes == {index}
