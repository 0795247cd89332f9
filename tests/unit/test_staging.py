from __future__ import annotations

from pathlib import Path

import pytest

from orasync.oracle.staging import CleanupError, StagingError, TemporarySchema


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_staging_loads_files_in_dependency_order(tmp_path: Path, fake_instance) -> None:
    # items.sql sorts first but references prices.
    items = _write(tmp_path / "items.sql", "CREATE TABLE items (price_id NUMBER REFERENCES prices);\n")
    prices = _write(tmp_path / "prices.sql", "CREATE TABLE prices (id NUMBER);\n")

    with TemporarySchema(fake_instance, "ORASYNC_TMP", [items, prices]) as staging:
        snapshot = staging.snapshot()
        assert snapshot.table_names == ["items", "prices"]

    assert fake_instance.created == ["ORASYNC_TMP"]
    assert fake_instance.dropped == ["ORASYNC_TMP"]


def test_staging_gives_up_when_a_pass_makes_no_progress(tmp_path: Path, fake_instance) -> None:
    orphan = _write(tmp_path / "orphan.sql", "CREATE TABLE orphan (x NUMBER REFERENCES missing);\n")

    with pytest.raises(StagingError, match="orphan.sql"):
        with TemporarySchema(fake_instance, "ORASYNC_TMP", [orphan]):
            pass

    assert fake_instance.dropped == ["ORASYNC_TMP"]


@pytest.mark.parametrize(
    "text",
    [
        "DROP TABLE orders;\n",
        "INSERT INTO orders VALUES (1);\n",
        'CREATE TABLE "APP"."ORDERS" (id NUMBER);\n',
        "ALTER TABLE app.orders ADD (x NUMBER);\n",
        "COMMENT ON TABLE app.orders IS 'changed';\n",
        'COMMENT ON COLUMN "APP"."ORDERS"."ID" IS \'changed\';\n',
        "COMMENT ON COLUMN app . orders.id IS 'changed';\n",
        "CREATE INDEX orders_ix ON app.orders (id);\n",
        'CREATE UNIQUE INDEX "APP"."ORDERS_UK" ON "ORDERS" ("ID");\n',
        "COMMENT ON MATERIALIZED VIEW orders_mv IS 'x';\n",
    ],
)
def test_staging_rejects_statements_that_could_reach_live_schemas(tmp_path: Path, fake_instance, text: str) -> None:
    path = _write(tmp_path / "orders.sql", text)

    with pytest.raises(StagingError):
        with TemporarySchema(fake_instance, "ORASYNC_TMP", [path]):
            pass

    assert fake_instance.executed == []


def test_staging_refuses_existing_schema_with_tables(fake_instance) -> None:
    fake_instance.add_table("ORASYNC_TMP", "leftover", "id NUMBER")

    with pytest.raises(StagingError, match="already exists"):
        with TemporarySchema(fake_instance, "ORASYNC_TMP", []):
            pass

    assert "leftover" in fake_instance.schemas["ORASYNC_TMP"]
    assert fake_instance.dropped == []


def test_staging_reuses_existing_empty_schema(fake_instance) -> None:
    fake_instance.add_schema("ORASYNC_TMP")

    with TemporarySchema(fake_instance, "ORASYNC_TMP", []):
        pass

    assert fake_instance.created == []
    assert fake_instance.dropped == ["ORASYNC_TMP"]


def test_release_failure_after_success_raises_cleanup_error(fake_instance) -> None:
    fake_instance.fail_drop = True

    with pytest.raises(CleanupError, match="ORA-01940"):
        with TemporarySchema(fake_instance, "ORASYNC_TMP", []):
            pass


def test_release_failure_does_not_mask_block_error(fake_instance) -> None:
    fake_instance.fail_drop = True

    with pytest.raises(KeyError):
        with TemporarySchema(fake_instance, "ORASYNC_TMP", []):
            raise KeyError("boom")


def test_staging_statements_skip_comments_and_quoted_semicolons(tmp_path: Path, fake_instance) -> None:
    path = _write(
        tmp_path / "orders.sql",
        "-- orders; header\n"
        "CREATE TABLE orders (id NUMBER);\n"
        "/* trailing; note */\n"
        "COMMENT ON TABLE orders IS 'a;b';\n",
    )

    with TemporarySchema(fake_instance, "ORASYNC_TMP", [path]):
        pass

    assert [statement for _, statement in fake_instance.executed] == [
        "CREATE TABLE orders (id NUMBER)",
        "COMMENT ON TABLE orders IS 'a;b'",
    ]


def test_staging_accepts_unqualified_indexes_and_comments(tmp_path: Path, fake_instance) -> None:
    path = _write(
        tmp_path / "orders.sql",
        'CREATE TABLE "ORDERS" ("ID" NUMBER);\n'
        'CREATE UNIQUE INDEX "ORDERS_UK" ON "ORDERS" ("ID");\n'
        "COMMENT ON TABLE \"ORDERS\" IS 'Orders. All of them';\n"
        "COMMENT ON COLUMN \"ORDERS\".\"ID\" IS 'Key';\n",
    )

    with TemporarySchema(fake_instance, "ORASYNC_TMP", [path]):
        pass

    assert len(fake_instance.executed) == 4
