from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from orasync.diff.schema_diff import AlterTable, CreateTable, DropTable, RenameTable
from orasync.fs.directory import Directory
from orasync.models import PullReport, Table
from orasync.normalize.ddl_normalizer import DdlNormalizer
from orasync.oracle.instance import DatabaseError
from orasync.sync.applier import SchemaDiffApplier, UnsupportedDiffError


@dataclass(frozen=True)
class _TruncateTable:
    table: Table


def _applier(instance, line_ending: str = "LF") -> SchemaDiffApplier:
    return SchemaDiffApplier(instance, DdlNormalizer(line_ending), PullReport())


def test_create_writes_normalized_definition(tmp_path: Path, fake_instance) -> None:
    fake_instance.add_table("APP", "orders", "id NUMBER")
    applier = _applier(fake_instance, line_ending="CRLF")

    ret = applier.apply(Directory(tmp_path), CreateTable(table=Table(name="orders")), fake_instance.schema("APP"))

    assert ret == 0
    assert (tmp_path / "orders.sql").read_bytes() == b"CREATE TABLE orders (id NUMBER);\r\n"
    assert applier.report.added_files == [tmp_path / "orders.sql"]


def test_alter_overwrites_in_place(tmp_path: Path, fake_instance) -> None:
    fake_instance.add_table("APP", "orders", "id NUMBER, total NUMBER")
    (tmp_path / "orders.sql").write_text("CREATE TABLE orders (id NUMBER);\n", encoding="utf-8")
    applier = _applier(fake_instance)
    table = Table(name="orders")

    ret = applier.apply(Directory(tmp_path), AlterTable(from_table=table, to_table=table), fake_instance.schema("APP"))

    assert ret == 0
    assert (tmp_path / "orders.sql").read_text(encoding="utf-8") == fake_instance.ddl("APP", "orders")
    assert applier.report.modified_files == [tmp_path / "orders.sql"]


def test_drop_of_missing_file_is_an_error(tmp_path: Path, fake_instance) -> None:
    fake_instance.add_schema("APP")
    applier = _applier(fake_instance)

    ret = applier.apply(Directory(tmp_path), DropTable(table=Table(name="ghost")), fake_instance.schema("APP"))

    assert ret == 1
    assert applier.report.deleted_files == []


def test_definition_failure_leaves_file_alone(tmp_path: Path, fake_instance, monkeypatch) -> None:
    fake_instance.add_table("APP", "orders", "id NUMBER")
    (tmp_path / "orders.sql").write_text("old\n", encoding="utf-8")

    def _fail(schema: str, table_name: str) -> str:
        raise DatabaseError("ORA-31603: object not found")

    monkeypatch.setattr(fake_instance, "show_create_table", _fail)
    table = Table(name="orders")

    ret = _applier(fake_instance).apply(
        Directory(tmp_path), AlterTable(from_table=table, to_table=table), fake_instance.schema("APP")
    )

    assert ret == 1
    assert (tmp_path / "orders.sql").read_text(encoding="utf-8") == "old\n"


def test_rename_raises_without_touching_files(tmp_path: Path, fake_instance) -> None:
    fake_instance.add_table("APP", "new_orders", "id NUMBER")
    (tmp_path / "orders.sql").write_text("CREATE TABLE orders (id NUMBER);\n", encoding="utf-8")
    diff = RenameTable(from_table=Table(name="orders"), to_table=Table(name="new_orders"))

    with pytest.raises(UnsupportedDiffError, match="renames"):
        _applier(fake_instance).apply(Directory(tmp_path), diff, fake_instance.schema("APP"))

    assert sorted(path.name for path in tmp_path.iterdir()) == ["orders.sql"]


def test_unknown_diff_kind_raises(tmp_path: Path, fake_instance) -> None:
    fake_instance.add_schema("APP")

    with pytest.raises(UnsupportedDiffError, match="_TruncateTable"):
        _applier(fake_instance).apply(
            Directory(tmp_path), _TruncateTable(table=Table(name="orders")), fake_instance.schema("APP")
        )
