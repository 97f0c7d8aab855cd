"""Pytest configuration and fixtures"""

import io
import os
import threading
import time

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENABLE_BACKGROUND_SWEEPER", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from exceptions.exceptions import SinkUploadException
import models  # noqa: F401
from services.blob_store import BlobStore
from services.drive_sink import SinkEntry
from services.sink_handoff_service import SinkHandoffService


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls BlobStore makes"""

    def __init__(self):
        self.objects = {}
        self.fail_put = False
        self.fail_delete_keys = set()
        self.get_delays = {}
        self.deleted = []
        self._lock = threading.Lock()

    def _error(self, code, operation):
        return ClientError({"Error": {"Code": code, "Message": code}}, operation)

    def put_object(self, Bucket, Key, Body, ContentType=None):
        if self.fail_put:
            raise self._error("InternalError", "PutObject")
        with self._lock:
            self.objects[Key] = bytes(Body)
        return {"ETag": '"etag"'}

    def get_object(self, Bucket, Key):
        delay = self.get_delays.get(Key)
        if delay:
            time.sleep(delay)
        with self._lock:
            if Key not in self.objects:
                raise self._error("NoSuchKey", "GetObject")
            return {"Body": io.BytesIO(self.objects[Key])}

    def delete_objects(self, Bucket, Delete):
        errors = []
        with self._lock:
            for item in Delete["Objects"]:
                key = item["Key"]
                if key in self.fail_delete_keys:
                    errors.append({"Key": key, "Code": "AccessDenied", "Message": "Access Denied"})
                    continue
                self.objects.pop(key, None)
                self.deleted.append(key)
        return {"Errors": errors} if errors else {}


class FakeDriveSink:
    """Records every call the sink handoff and folder service make"""

    def __init__(self):
        self.folders = {}
        self.entries = {}
        self.uploads = []
        self.fail_multipart = False
        self.fail_simple = False
        self.fail_list = False
        self._next_id = 0

    def _new_id(self, prefix):
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    def add_entry(self, folder_id, name, size):
        entry = SinkEntry(id=self._new_id("existing"), name=name, size=size)
        self.entries.setdefault(folder_id, []).append(entry)
        return entry

    def list_folder(self, folder_id, name=None):
        if self.fail_list:
            raise SinkUploadException("list failed")
        return [e for e in self.entries.get(folder_id, []) if name is None or e.name == name]

    def ensure_folder(self, name, parent_id):
        key = (parent_id, name)
        if key not in self.folders:
            self.folders[key] = self._new_id("folder")
        return self.folders[key]

    def _upload(self, method, folder_id, name, mime_type, data):
        self.uploads.append({"method": method, "folder_id": folder_id, "name": name, "mime_type": mime_type, "data": data})
        entry = SinkEntry(id=self._new_id("file"), name=name, size=len(data))
        self.entries.setdefault(folder_id, []).append(entry)
        return entry

    def upload_multipart(self, folder_id, name, mime_type, data):
        if self.fail_multipart:
            self.uploads.append({"method": "multipart-failed", "name": name})
            raise SinkUploadException("Multipart upload failed: 500")
        return self._upload("multipart", folder_id, name, mime_type, data)

    def upload_simple(self, folder_id, name, mime_type, data):
        if self.fail_simple:
            self.uploads.append({"method": "simple-failed", "name": name})
            raise SinkUploadException("Simple upload failed: 500")
        return self._upload("simple", folder_id, name, mime_type, data)

    @property
    def successful_uploads(self):
        return [u for u in self.uploads if u["method"] in ("multipart", "simple")]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def blob_store(s3_client):
    return BlobStore(s3_client=s3_client, bucket="test-bucket")


@pytest.fixture
def drive_sink():
    return FakeDriveSink()


@pytest.fixture
def handoff(drive_sink):
    return SinkHandoffService(drive_sink, simple_upload_max_bytes=100 * 1024 * 1024)


@pytest.fixture
def client(session_factory, blob_store, drive_sink, handoff):
    from main import app
    from dependencies.storage import get_blob_store, get_drive_sink, get_sink_handoff

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_drive_sink] = lambda: drive_sink
    app.dependency_overrides[get_sink_handoff] = lambda: handoff

    yield TestClient(app)

    app.dependency_overrides.clear()
