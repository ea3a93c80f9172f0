"""Tests for backup records, the backup store and retention date logic."""

from datetime import date, datetime

import pytest

from n8n_updates.utils.errors import BackupIntegrityError, RollbackTargetMissing
from n8n_updates.utils.state_manager import (
    BackupRecord,
    BackupStore,
    PACKAGE_ARCHIVE,
    VERSION_INFO,
)


@pytest.fixture
def store(tmp_path):
    return BackupStore(tmp_path / "backups")


def test_new_timestamp_format():
    assert BackupStore.new_timestamp(datetime(2024, 1, 15, 12, 0, 5)) == "20240115-120005"


def test_store_is_not_created_by_reads(store):
    assert store.list_records() == []
    assert not store.backup_root.exists()


def test_create_record_refuses_existing_timestamp(store):
    store.create_record("20240115-120000")
    with pytest.raises(BackupIntegrityError):
        store.create_record("20240115-120000")


def test_list_records_sorted_and_directories_only(store):
    for name in ("20240301-000000", "20240115-120000", "20240201-080000"):
        store.create_record(name)
    (store.backup_root / "rollback-20240302-000000.log").write_text("log")

    assert store.list_records() == ["20240115-120000", "20240201-080000", "20240301-000000"]
    assert store.count() == 3


def test_load_record_missing_lists_available(store):
    store.create_record("20240115-120000")

    with pytest.raises(RollbackTargetMissing) as exc:
        store.load_record("20990101-000000")
    assert exc.value.available == ["20240115-120000"]
    assert exc.value.exit_code == 1


def test_record_from_directory_detects_artifacts(store):
    path = store.create_record("20240115-120000")
    (path / PACKAGE_ARCHIVE).write_bytes(b"")
    (path / VERSION_INFO).write_text(
        "Node version: v20.11.0\nnpm version: 10.2.4\nn8n version (pre-upgrade): 1.60.0\n"
    )

    record = store.load_record("20240115-120000")
    assert record.restorable
    assert record.data_archive is None
    assert record.summary() == "1.60.0"


def test_summary_without_version_info(tmp_path):
    assert BackupRecord(timestamp="x", path=tmp_path).summary() == "no version info"


def test_cutoff_crosses_month_boundary():
    assert BackupStore.cutoff_for(7, date(2024, 2, 8)) == "20240201"
    assert BackupStore.cutoff_for(30, date(2024, 3, 1)) == "20240131"


def test_delete_before_compares_date_prefix(store):
    for name in ("20240131-235959", "20240201-000000", "20240215-120000"):
        store.create_record(name)
    (store.backup_root / "manual-copy").mkdir()

    deleted = store.delete_before("20240201")

    assert deleted == ["20240131-235959"]
    assert store.list_records() == ["20240201-000000", "20240215-120000", "manual-copy"]
