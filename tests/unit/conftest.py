from __future__ import annotations

import re
from pathlib import Path
from typing import Callable

import pytest
import yaml

from orasync.models import Column, SchemaSnapshot, Table
from orasync.oracle.instance import DatabaseError

CONNECTION = {
    "host": "db.example",
    "port": 1521,
    "service_name": "ORCLPDB",
    "username": "orasync_svc",
    "password": "pw",
}

_CREATE_TABLE_PATTERN = re.compile(r'(?is)^\s*CREATE\s+TABLE\s+"?(\w+)"?\s*\((.*)\)\s*$')
_REFERENCES_PATTERN = re.compile(r"(?i)REFERENCES\s+(\w+)")


def _columns(body: str) -> tuple[Column, ...]:
    columns: list[Column] = []
    for part in body.split(","):
        tokens = part.split()
        if tokens:
            columns.append(Column(name=tokens[0], data_type=" ".join(tokens[1:])))
    return tuple(columns)


class FakeInstance:
    """In-memory stand-in for OracleInstance; tables are ``CREATE TABLE name (body)``."""

    def __init__(self) -> None:
        self.schemas: dict[str, dict[str, str]] = {}
        self.created: list[str] = []
        self.dropped: list[str] = []
        self.executed: list[tuple[str, str]] = []
        self.fail_drop = False

    def __str__(self) -> str:
        return "orasync_svc@fake"

    def add_table(self, schema: str, table: str, body: str) -> None:
        self.schemas.setdefault(schema, {})[table] = body

    def add_schema(self, schema: str) -> None:
        self.schemas.setdefault(schema, {})

    def ddl(self, schema: str, table: str) -> str:
        return f"CREATE TABLE {table} ({self.schemas[schema][table]});\n"

    def schema_names(self) -> list[str]:
        return sorted(self.schemas)

    def schema(self, name: str) -> SchemaSnapshot | None:
        tables = self.schemas.get(name)
        if tables is None:
            return None
        return SchemaSnapshot(
            name=name,
            tables=tuple(
                Table(name=table, columns=_columns(body)) for table, body in sorted(tables.items())
            ),
        )

    def show_create_table(self, schema: str, table_name: str) -> str:
        return self.ddl(schema, table_name)

    def create_schema(self, name: str, tablespace: str | None = None) -> None:
        self.schemas[name] = {}
        self.created.append(name)

    def drop_schema(self, name: str) -> None:
        if self.fail_drop:
            raise DatabaseError("ORA-01940: cannot drop a user that is currently connected")
        del self.schemas[name]
        self.dropped.append(name)

    def execute_in_schema(self, schema: str, statement: str) -> None:
        self.executed.append((schema, statement))
        match = _CREATE_TABLE_PATTERN.match(statement)
        if match is None:
            return
        table, body = match.group(1), match.group(2)
        for referenced in _REFERENCES_PATTERN.findall(body):
            if referenced not in self.schemas[schema]:
                raise DatabaseError("ORA-00942: table or view does not exist")
        self.schemas[schema][table] = body


class FakePool:
    def __init__(self, instance: FakeInstance) -> None:
        self.instance = instance
        self.configs: list[object] = []
        self.closed = False

    def get(self, oracle_config):
        self.configs.append(oracle_config)
        return self.instance

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_instance() -> FakeInstance:
    return FakeInstance()


@pytest.fixture
def fake_pool(fake_instance: FakeInstance) -> FakePool:
    return FakePool(fake_instance)


@pytest.fixture
def write_options() -> Callable[..., Path]:
    def _write(directory: Path, **values: object) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / ".orasync.yml").write_text(yaml.safe_dump(values), encoding="utf-8")
        return directory

    return _write


@pytest.fixture
def connection_options() -> dict[str, object]:
    return dict(CONNECTION)
