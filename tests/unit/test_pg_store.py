from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from bom_reconcile.db import pg_store
from bom_reconcile.db.record_store import DuplicateIdentityError, RecordNotFoundError, RecordStoreError, new_record


@pytest.fixture()
def cursor():
    return MagicMock()


@pytest.fixture()
def pg(cursor):
    with patch.object(pg_store, "ThreadedConnectionPool") as pool_cls:
        store = pg_store.PostgresRecordStore("dbname=test")
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    store._pool = pool_cls.return_value
    store._pool.getconn.return_value = conn
    return store


def test_find_by_external_id_uses_family(pg, cursor):
    cursor.fetchone.return_value = (42,)
    assert pg.find_by_external_id("assembly_item", "NS_A") == 42
    sql, params = cursor.execute.call_args.args
    assert "family = %s AND external_id = %s" in sql
    assert params == ("item", "NS_A")


def test_create_returns_ref_and_serializes_decimals(pg, cursor):
    cursor.fetchone.return_value = (7,)
    ref = pg.create("inventory_item", {"externalid": "NS_P"}, {"itemvendor": [{"purchaseprice": Decimal("1.5")}]})
    assert ref == 7
    params = cursor.execute.call_args.args[1]
    assert params[:3] == ("item", "inventory_item", "NS_P")
    assert '"1.5"' in params[4].dumps(params[4].adapted)


def test_unique_violation_is_duplicate_identity(pg, cursor):
    cursor.execute.side_effect = psycopg2.errors.UniqueViolation("dup")
    with pytest.raises(DuplicateIdentityError):
        pg.create("vendor", {"externalid": "NS_VENDOR_X"})


def test_other_database_errors_are_store_errors(pg, cursor):
    cursor.execute.side_effect = psycopg2.OperationalError("gone")
    with pytest.raises(RecordStoreError):
        pg.create("vendor", {"externalid": "NS_VENDOR_X"})


def test_load_missing_raises(pg, cursor):
    cursor.fetchone.return_value = None
    with pytest.raises(RecordNotFoundError):
        pg.load("bom", 3)


def test_save_new_handle_inserts(pg, cursor):
    cursor.fetchone.return_value = (11,)
    handle = new_record("bom")
    handle.set_value("externalid", "NS_A_BOM")
    assert pg.save(handle) == 11
    assert handle.ref == 11
    assert "INSERT INTO" in cursor.execute.call_args.args[0]


def test_save_existing_updates(pg, cursor):
    cursor.rowcount = 1
    handle = new_record("bom")
    handle.ref = 11
    assert pg.save(handle) == 11
    assert cursor.execute.call_args.args[0].startswith("UPDATE")


def test_connection_failure_is_store_error():
    with patch.object(pg_store, "ThreadedConnectionPool", side_effect=psycopg2.OperationalError("refused")):
        with pytest.raises(RecordStoreError, match="connection failed"):
            pg_store.PostgresRecordStore("dbname=nowhere")
