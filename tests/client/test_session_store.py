import json
from datetime import datetime, timedelta, timezone

from direct_upload.client.store import SessionStore, file_fingerprint
from direct_upload.multipart.session import SessionStatus, UploadSession


def _session() -> UploadSession:
    session = UploadSession(
        upload_id="upload-1", key="a/b.bin", part_size=5, total_parts=3, file_size=13
    )
    session.record(2, '"e2"')
    return session


def test_save_and_load_round_trip(tmp_path):
    store = SessionStore(tmp_path)
    store.save("fp", _session())

    loaded = store.load("fp")

    assert loaded is not None
    assert loaded.upload_id == "upload-1"
    assert loaded.key == "a/b.bin"
    assert loaded.part_size == 5
    assert loaded.parts == {2: '"e2"'}
    assert list(tmp_path.glob("*.tmp")) == []


def test_expired_session_is_discarded(tmp_path):
    store = SessionStore(tmp_path, ttl=timedelta(hours=1))
    session = _session()
    session.created_at = datetime.now(timezone.utc) - timedelta(hours=2)
    store.save("fp", session)

    assert store.load("fp") is None
    assert not (tmp_path / "fp.json").exists()


def test_terminal_session_is_not_resumed(tmp_path):
    store = SessionStore(tmp_path)
    session = _session()
    session.transition(SessionStatus.ABORTED)
    store.save("fp", session)

    assert store.load("fp") is None


def test_corrupt_file_is_discarded(tmp_path):
    (tmp_path / "fp.json").write_text("{not json", encoding="utf-8")

    assert SessionStore(tmp_path).load("fp") is None
    assert not (tmp_path / "fp.json").exists()


def test_fingerprint_depends_on_key(tmp_path):
    source = tmp_path / "a.bin"
    source.write_bytes(b"data")

    assert file_fingerprint(source, "x/a.bin") != file_fingerprint(source, "y/a.bin")
    assert file_fingerprint(source, "x/a.bin") == file_fingerprint(source, "x/a.bin")


def test_naive_timestamp_is_read_as_utc(tmp_path):
    store = SessionStore(tmp_path, ttl=timedelta(hours=1))
    payload = _session().to_dict()
    payload["createdAt"] = "2001-01-01T00:00:00"
    (tmp_path / "old.json").write_text(json.dumps(payload), encoding="utf-8")
    fresh = dict(payload, createdAt=datetime.now(timezone.utc).replace(tzinfo=None).isoformat())
    (tmp_path / "fresh.json").write_text(json.dumps(fresh), encoding="utf-8")

    assert store.load("old") is None
    assert not (tmp_path / "old.json").exists()
    loaded = store.load("fresh")
    assert loaded is not None
    assert loaded.created_at.tzinfo is not None
