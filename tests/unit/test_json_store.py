import json

import pytest

from timesync.infrastructure.storage.json_store import JsonDocumentStore, StorageError


def test_initialize_creates_empty_collections(tmp_path):
    store = JsonDocumentStore(tmp_path / "data")

    store.initialize()

    assert store.load("ledger") == {"meetings": []}
    assert store.load("meetings") == {"meetings": []}
    assert store.load("reviews") == []
    assert store.load("decisions") == []
    assert store.path_for("ledger").name == "ai-agent-meetings.json"


def test_save_then_load_returns_document(store):
    store.save("reviews", [{"id": "m-1"}])

    assert store.load("reviews") == [{"id": "m-1"}]
    assert not list(store.base_dir.glob(".*.tmp"))


def test_corrupt_document_is_quarantined_and_reset(store):
    store.path_for("ledger").write_text("{not json", encoding="utf-8")

    assert store.load("ledger") == {"meetings": []}

    quarantined = list(store.base_dir.glob("corrupted-ledger-*.json"))
    assert len(quarantined) == 1
    assert quarantined[0].read_text(encoding="utf-8") == "{not json"
    assert json.loads(store.path_for("ledger").read_text(encoding="utf-8")) == {"meetings": []}


def test_wrong_document_shape_is_reset(store):
    store.path_for("reviews").write_text('{"unexpected": true}', encoding="utf-8")

    assert store.load("reviews") == []
    assert list(store.base_dir.glob("corrupted-reviews-*.json"))


def test_empty_file_and_bom_are_tolerated(store):
    store.path_for("decisions").write_text("", encoding="utf-8")
    assert store.load("decisions") == []

    store.path_for("decisions").write_text('\ufeff[{"meetingId": "m-1"}]', encoding="utf-8")
    assert store.load("decisions") == [{"meetingId": "m-1"}]


def test_unknown_collection_is_rejected(store):
    with pytest.raises(StorageError):
        store.load("nope")


def test_backup_and_restore_processed_meetings(store):
    store.save("meetings", {"meetings": [{"id": "m-1"}, {"id": "m-2"}]})

    backup = store.create_backup()
    store.save("meetings", {"meetings": []})
    restored = store.restore_from_backup(backup.name)

    assert restored == 2
    assert store.load("meetings") == {"meetings": [{"id": "m-1"}, {"id": "m-2"}]}


def test_restore_from_missing_backup_raises(store):
    with pytest.raises(StorageError):
        store.restore_from_backup("backup-missing.json")


def test_collection_backup_copies_file(store):
    store.save("reviews", [{"id": "m-1"}])

    target = store.backup("reviews", "reviews-backup")

    assert target.name.startswith("reviews-backup-")
    assert json.loads(target.read_text(encoding="utf-8")) == [{"id": "m-1"}]


def test_is_writable(store):
    assert store.is_writable() is True
