from __future__ import annotations

import logging
import secrets
from contextlib import contextmanager
from typing import Iterator

from orasync.config import OracleConfig
from orasync.models import Column, Constraint, Index, SchemaSnapshot, Table

try:
    import oracledb
except ImportError:  # pragma: no cover - covered by runtime integration.
    oracledb = None


GENERATED_NAME_FLAGS = {"GENERATED NAME", "Y"}


class DatabaseError(RuntimeError):
    pass


def _read_value(value: object) -> str:
    if hasattr(value, "read"):
        return value.read()
    return str(value)


def _optional_int(value: object) -> int | None:
    if value is None:
        return None
    return int(value)


class OracleInstance:
    """One live Oracle database, reached through a single lazy connection."""

    def __init__(self, oracle_config: OracleConfig, logger: logging.Logger | None = None) -> None:
        self.oracle_config = oracle_config
        self.logger = logger or logging.getLogger(__name__)
        self._connection = None
        self._session_user: str | None = None

    def __str__(self) -> str:
        return f"{self.oracle_config.username}@{self.oracle_config.dsn}"

    def _require_driver(self) -> None:
        if oracledb is None:
            raise RuntimeError(
                "oracledb package is required. Install dependencies first: pip install -e ."
            )

    @staticmethod
    def _quote_identifier(identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    @staticmethod
    def _quote_literal(value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def _configure_transform(self, cursor: "oracledb.Cursor") -> None:
        cursor.execute(
            """
            BEGIN
              DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'SQLTERMINATOR', TRUE);
              DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'PRETTY', TRUE);
              DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'EMIT_SCHEMA', FALSE);
              DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'SEGMENT_ATTRIBUTES', FALSE);
              DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'STORAGE', FALSE);
              DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'TABLESPACE', FALSE);
              DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'PARTITIONING', FALSE);
            END;
            """
        )

    def connect(self):
        if self._connection is not None:
            return self._connection

        self._require_driver()
        try:
            connection = oracledb.connect(
                user=self.oracle_config.username,
                password=self.oracle_config.password,
                dsn=self.oracle_config.dsn,
            )
        except oracledb.Error as exc:
            raise DatabaseError(f"Unable to connect to {self}: {exc}") from exc

        try:
            cursor = connection.cursor()
            self._configure_transform(cursor)
            cursor.execute("SELECT USER FROM DUAL")
            self._session_user = str(cursor.fetchone()[0])
            cursor.close()
        except oracledb.Error as exc:
            connection.close()
            raise DatabaseError(f"Unable to prepare session on {self}: {exc}") from exc

        self.logger.debug("Connected to %s", self)
        self._connection = connection
        return connection

    @contextmanager
    def _cursor(self) -> Iterator["oracledb.Cursor"]:
        connection = self.connect()
        cursor = connection.cursor()
        try:
            yield cursor
        except oracledb.Error as exc:
            raise DatabaseError(str(exc)) from exc
        finally:
            cursor.close()

    def close(self) -> None:
        if self._connection is None:
            return
        connection, self._connection = self._connection, None
        connection.close()

    def schema_names(self) -> list[str]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT USERNAME
                FROM ALL_USERS
                WHERE ORACLE_MAINTAINED = 'N'
                ORDER BY USERNAME
                """
            )
            return [str(row[0]) for row in cursor.fetchall()]

    def schema(self, name: str) -> SchemaSnapshot | None:
        with self._cursor() as cursor:
            cursor.execute("SELECT USERNAME FROM ALL_USERS WHERE USERNAME = :1", [name])
            if cursor.fetchone() is None:
                return None

            cursor.execute(
                """
                SELECT TABLE_NAME
                FROM ALL_TABLES
                WHERE OWNER = :1
                  AND NESTED = 'NO'
                  AND SECONDARY = 'N'
                  AND (IOT_TYPE IS NULL OR IOT_TYPE = 'IOT')
                  AND TABLE_NAME NOT LIKE 'BIN$%'
                ORDER BY TABLE_NAME
                """,
                [name],
            )
            table_names = [str(row[0]) for row in cursor.fetchall()]
            columns = self._fetch_columns(cursor, name)
            constraints = self._fetch_constraints(cursor, name)
            indexes = self._fetch_indexes(cursor, name)

        tables = tuple(
            Table(
                name=table_name,
                columns=tuple(columns.get(table_name, [])),
                constraints=frozenset(constraints.get(table_name, [])),
                indexes=frozenset(indexes.get(table_name, [])),
            )
            for table_name in table_names
        )
        return SchemaSnapshot(name=name, tables=tables)

    def _fetch_columns(self, cursor: "oracledb.Cursor", owner: str) -> dict[str, list[Column]]:
        cursor.execute(
            """
            SELECT TABLE_NAME, COLUMN_NAME, DATA_TYPE, DATA_LENGTH, DATA_PRECISION,
                   DATA_SCALE, NULLABLE, DATA_DEFAULT
            FROM ALL_TAB_COLUMNS
            WHERE OWNER = :1
            ORDER BY TABLE_NAME, COLUMN_ID
            """,
            [owner],
        )
        columns: dict[str, list[Column]] = {}
        for table_name, column_name, data_type, length, precision, scale, nullable, default in cursor.fetchall():
            default_text = _read_value(default).strip() if default is not None else None
            columns.setdefault(str(table_name), []).append(
                Column(
                    name=str(column_name),
                    data_type=str(data_type),
                    data_length=_optional_int(length),
                    data_precision=_optional_int(precision),
                    data_scale=_optional_int(scale),
                    nullable=str(nullable) == "Y",
                    default=default_text or None,
                )
            )
        return columns

    def _fetch_constraints(self, cursor: "oracledb.Cursor", owner: str) -> dict[str, list[Constraint]]:
        cursor.execute(
            """
            SELECT c.TABLE_NAME, c.CONSTRAINT_NAME, c.CONSTRAINT_TYPE, c.GENERATED,
                   cc.COLUMN_NAME, r.TABLE_NAME
            FROM ALL_CONSTRAINTS c
            JOIN ALL_CONS_COLUMNS cc
              ON cc.OWNER = c.OWNER
             AND cc.CONSTRAINT_NAME = c.CONSTRAINT_NAME
            LEFT JOIN ALL_CONSTRAINTS r
              ON r.OWNER = c.R_OWNER
             AND r.CONSTRAINT_NAME = c.R_CONSTRAINT_NAME
            WHERE c.OWNER = :1
              AND c.CONSTRAINT_TYPE IN ('P', 'U', 'R')
            ORDER BY c.TABLE_NAME, c.CONSTRAINT_NAME, cc.POSITION
            """,
            [owner],
        )
        grouped: dict[tuple[str, str], dict[str, object]] = {}
        for table_name, constraint_name, constraint_type, generated, column_name, referenced in cursor.fetchall():
            entry = grouped.setdefault(
                (str(table_name), str(constraint_name)),
                {
                    "type": str(constraint_type),
                    "generated": str(generated) in GENERATED_NAME_FLAGS,
                    "columns": [],
                    "referenced": str(referenced) if referenced is not None else None,
                },
            )
            entry["columns"].append(str(column_name))

        constraints: dict[str, list[Constraint]] = {}
        for (table_name, constraint_name), entry in grouped.items():
            constraints.setdefault(table_name, []).append(
                Constraint(
                    name=None if entry["generated"] else constraint_name,
                    constraint_type=entry["type"],
                    columns=tuple(entry["columns"]),
                    referenced_table=entry["referenced"],
                )
            )
        return constraints

    def _fetch_indexes(self, cursor: "oracledb.Cursor", owner: str) -> dict[str, list[Index]]:
        cursor.execute(
            """
            SELECT i.TABLE_NAME, i.INDEX_NAME, i.UNIQUENESS, i.GENERATED, ic.COLUMN_NAME
            FROM ALL_INDEXES i
            JOIN ALL_IND_COLUMNS ic
              ON ic.INDEX_OWNER = i.OWNER
             AND ic.INDEX_NAME = i.INDEX_NAME
            WHERE i.TABLE_OWNER = :1
              AND i.INDEX_TYPE <> 'LOB'
              AND NOT EXISTS (
                SELECT 1
                FROM ALL_CONSTRAINTS c
                WHERE c.OWNER = i.TABLE_OWNER
                  AND c.INDEX_NAME = i.INDEX_NAME
              )
            ORDER BY i.TABLE_NAME, i.INDEX_NAME, ic.COLUMN_POSITION
            """,
            [owner],
        )
        grouped: dict[tuple[str, str], dict[str, object]] = {}
        for table_name, index_name, uniqueness, generated, column_name in cursor.fetchall():
            entry = grouped.setdefault(
                (str(table_name), str(index_name)),
                {
                    "unique": str(uniqueness) == "UNIQUE",
                    "generated": str(generated) in GENERATED_NAME_FLAGS,
                    "columns": [],
                },
            )
            entry["columns"].append(str(column_name))

        indexes: dict[str, list[Index]] = {}
        for (table_name, index_name), entry in grouped.items():
            indexes.setdefault(table_name, []).append(
                Index(
                    name=None if entry["generated"] else index_name,
                    unique=entry["unique"],
                    columns=tuple(entry["columns"]),
                )
            )
        return indexes

    def _extract_ddl(self, cursor: "oracledb.Cursor", object_type: str, name: str, owner: str) -> str:
        cursor.execute(
            "SELECT DBMS_METADATA.GET_DDL(:1, :2, :3) FROM DUAL",
            [object_type, name, owner],
        )
        row = cursor.fetchone()
        if row is None or row[0] is None:
            raise DatabaseError(f"GET_DDL returned NULL for {object_type} {owner}.{name}.")
        return _read_value(row[0])

    def _extract_table_indexes(self, cursor: "oracledb.Cursor", owner: str, table_name: str) -> list[str]:
        cursor.execute(
            """
            SELECT i.INDEX_NAME
            FROM ALL_INDEXES i
            WHERE i.TABLE_OWNER = :1
              AND i.TABLE_NAME = :2
              AND i.INDEX_TYPE <> 'LOB'
              AND NOT EXISTS (
                SELECT 1
                FROM ALL_CONSTRAINTS c
                WHERE c.OWNER = i.TABLE_OWNER
                  AND c.INDEX_NAME = i.INDEX_NAME
              )
            ORDER BY i.INDEX_NAME
            """,
            [owner, table_name],
        )
        index_names = [str(row[0]) for row in cursor.fetchall()]
        return [self._extract_ddl(cursor, "INDEX", index_name, owner).strip() for index_name in index_names]

    def _extract_table_comments(self, cursor: "oracledb.Cursor", owner: str, table_name: str) -> list[str]:
        table_q = self._quote_identifier(table_name)
        statements: list[str] = []

        cursor.execute(
            """
            SELECT COMMENTS
            FROM ALL_TAB_COMMENTS
            WHERE OWNER = :1
              AND TABLE_NAME = :2
              AND COMMENTS IS NOT NULL
            """,
            [owner, table_name],
        )
        row = cursor.fetchone()
        if row and row[0] is not None:
            statements.append(f"COMMENT ON TABLE {table_q} IS {self._quote_literal(str(row[0]))};")

        cursor.execute(
            """
            SELECT c.COLUMN_NAME, c.COMMENTS
            FROM ALL_COL_COMMENTS c
            JOIN ALL_TAB_COLUMNS t
              ON t.OWNER = c.OWNER
             AND t.TABLE_NAME = c.TABLE_NAME
             AND t.COLUMN_NAME = c.COLUMN_NAME
            WHERE c.OWNER = :1
              AND c.TABLE_NAME = :2
              AND c.COMMENTS IS NOT NULL
            ORDER BY t.COLUMN_ID
            """,
            [owner, table_name],
        )
        for column_name, comment_text in cursor.fetchall():
            if comment_text is None:
                continue
            column_q = self._quote_identifier(str(column_name))
            statements.append(
                f"COMMENT ON COLUMN {table_q}.{column_q} IS {self._quote_literal(str(comment_text))};"
            )
        return statements

    def show_create_table(self, schema: str, table_name: str) -> str:
        """Return the table DDL followed by its standalone indexes and comments."""
        with self._cursor() as cursor:
            base_ddl = self._extract_ddl(cursor, "TABLE", table_name, schema).strip()
            indexes = self._extract_table_indexes(cursor, schema, table_name)
            comments = self._extract_table_comments(cursor, schema, table_name)

        sections: list[str] = [base_ddl]
        if indexes:
            sections.append("\n\n".join(indexes))
        if comments:
            sections.append("\n".join(comments))
        return "\n\n".join(section for section in sections if section).strip() + "\n"

    def create_schema(self, name: str, tablespace: str | None = None) -> None:
        password = "S" + secrets.token_hex(14)
        sql = f'CREATE USER {self._quote_identifier(name)} IDENTIFIED BY "{password}" ACCOUNT LOCK'
        if tablespace:
            tablespace_q = self._quote_identifier(tablespace)
            sql += f" DEFAULT TABLESPACE {tablespace_q} QUOTA UNLIMITED ON {tablespace_q}"
        with self._cursor() as cursor:
            cursor.execute(sql)

    def drop_schema(self, name: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(f"DROP USER {self._quote_identifier(name)} CASCADE")

    def execute_in_schema(self, schema: str, statement: str) -> None:
        with self._cursor() as cursor:
            session_user = self._session_user or self.oracle_config.username.upper()
            cursor.execute(f"ALTER SESSION SET CURRENT_SCHEMA = {self._quote_identifier(schema)}")
            try:
                cursor.execute(statement)
            finally:
                cursor.execute(f"ALTER SESSION SET CURRENT_SCHEMA = {self._quote_identifier(session_user)}")


class InstancePool:
    """Caches one :class:`OracleInstance` per connection config for a run."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._instances: dict[OracleConfig, OracleInstance] = {}

    def get(self, oracle_config: OracleConfig) -> OracleInstance:
        instance = self._instances.get(oracle_config)
        if instance is None:
            instance = OracleInstance(oracle_config, logger=self.logger)
            self._instances[oracle_config] = instance
        return instance

    def close(self) -> None:
        for instance in self._instances.values():
            try:
                instance.close()
            except Exception as exc:  # pragma: no cover - integration path.
                self.logger.warning("Failed to close connection to %s: %s", instance, exc)
        self._instances.clear()
