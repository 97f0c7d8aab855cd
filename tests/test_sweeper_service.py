"""Session sweeper tests"""

from datetime import datetime, timedelta, timezone

from botocore.exceptions import EndpointConnectionError
from sqlalchemy import update

from models.file_chunk import FileChunk
from models.upload_session import UploadSession
from services.chunk_service import ChunkService
from services.sweeper_service import SessionSweeper

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)
RETENTION = timedelta(hours=24)


def _upload(db, blob_store, session_id, chunks=2):
    service = ChunkService(db, blob_store)
    for index in range(chunks):
        service.store_chunk(session_id, index, chunks + 1, b"x" * (index + 1), "clip.mp4", target_folder_id="folder-1")


def _set_activity(db, session_id, when):
    db.execute(update(UploadSession).where(UploadSession.session_id == session_id).values(last_activity=when))
    db.execute(update(FileChunk).where(FileChunk.session_id == session_id).values(last_activity=when))
    db.commit()


def test_retention_boundary(db, blob_store, s3_client):
    _upload(db, blob_store, "at-cutoff")
    _upload(db, blob_store, "too-old")
    _upload(db, blob_store, "fresh")
    _set_activity(db, "at-cutoff", NOW - RETENTION)
    _set_activity(db, "too-old", NOW - RETENTION - timedelta(seconds=1))
    _set_activity(db, "fresh", NOW - timedelta(minutes=5))

    removed = SessionSweeper(db, blob_store).sweep(RETENTION, now=NOW)

    assert removed == 1
    remaining = {s.session_id for s in db.query(UploadSession).all()}
    assert remaining == {"at-cutoff", "fresh"}
    assert db.query(FileChunk).filter(FileChunk.session_id == "too-old").count() == 0
    assert not any(key.startswith("chunks/too-old/") for key in s3_client.objects)
    # Deletion was attempted for every path of the session, stored or not
    assert {k for k in s3_client.deleted if k.startswith("chunks/too-old/")} == {
        "chunks/too-old/000000", "chunks/too-old/000001", "chunks/too-old/000002"
    }
    assert len([k for k in s3_client.objects if k.startswith("chunks/at-cutoff/")]) == 2


def test_orphan_chunk_rows_are_swept(db, blob_store, s3_client):
    _upload(db, blob_store, "orphan")
    _set_activity(db, "orphan", NOW - timedelta(days=3))
    db.query(UploadSession).filter(UploadSession.session_id == "orphan").delete()
    db.commit()

    removed = SessionSweeper(db, blob_store).sweep(RETENTION, now=NOW)

    assert removed == 1
    assert db.query(FileChunk).count() == 0
    assert s3_client.objects == {}


def test_blob_failure_does_not_stop_other_sessions(db, blob_store, s3_client):
    _upload(db, blob_store, "bad")
    _upload(db, blob_store, "good")
    _set_activity(db, "bad", NOW - timedelta(days=2))
    _set_activity(db, "good", NOW - timedelta(days=2))
    s3_client.fail_delete_keys.add("chunks/bad/000000")

    removed = SessionSweeper(db, blob_store).sweep(RETENTION, now=NOW)

    assert removed == 2
    assert db.query(UploadSession).count() == 0
    assert db.query(FileChunk).count() == 0
    assert list(s3_client.objects) == ["chunks/bad/000000"]


def test_nothing_to_sweep(db, blob_store):
    _upload(db, blob_store, "fresh")
    _set_activity(db, "fresh", NOW)

    assert SessionSweeper(db, blob_store).sweep(RETENTION, now=NOW) == 0
    assert db.query(UploadSession).count() == 1


def test_unreachable_blob_store_still_removes_rows(db, blob_store, s3_client, monkeypatch):
    _upload(db, blob_store, "first")
    _upload(db, blob_store, "second")
    _set_activity(db, "first", NOW - timedelta(days=2))
    _set_activity(db, "second", NOW - timedelta(days=2))

    def unreachable(**kwargs):
        raise EndpointConnectionError(endpoint_url="https://r2.example.com")

    monkeypatch.setattr(s3_client, "delete_objects", unreachable)

    removed = SessionSweeper(db, blob_store).sweep(RETENTION, now=NOW)

    assert removed == 2
    assert db.query(UploadSession).count() == 0
    assert db.query(FileChunk).count() == 0


def test_unexpected_purge_error_skips_only_that_session(db, blob_store, monkeypatch):
    _upload(db, blob_store, "broken")
    _upload(db, blob_store, "healthy")
    _set_activity(db, "broken", NOW - timedelta(days=2))
    _set_activity(db, "healthy", NOW - timedelta(days=2))
    sweeper = SessionSweeper(db, blob_store)
    purge = sweeper.session_service.purge_session

    def purge_or_fail(session_id, total_chunks=None):
        if session_id == "broken":
            raise RuntimeError("boom")
        return purge(session_id, total_chunks)

    monkeypatch.setattr(sweeper.session_service, "purge_session", purge_or_fail)

    assert sweeper.sweep(RETENTION, now=NOW) == 1
    assert {s.session_id for s in db.query(UploadSession).all()} == {"broken"}
