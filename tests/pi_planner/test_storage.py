import types

import pytest

from services.pi_planner.app.config import PlannerSettings, StorageSettings
from services.pi_planner.app.persistence import storage as storage_module
from services.pi_planner.app.persistence.storage import ArtifactStorage


class NoSuchKey(Exception):
    pass


class FakeBody:
    def __init__(self, payload: bytes) -> None:
        self._payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def read(self) -> bytes:
        return self._payload


class FakeS3Client:
    exceptions = types.SimpleNamespace(NoSuchKey=NoSuchKey)

    def __init__(self, objects: dict) -> None:
        self._objects = objects

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def put_object(self, Bucket, Key, Body):
        self._objects[(Bucket, Key)] = Body

    async def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self._objects:
            raise NoSuchKey(Key)
        return {"Body": FakeBody(self._objects[(Bucket, Key)])}


@pytest.fixture
def s3_objects(monkeypatch):
    objects: dict = {}

    class FakeSession:
        def client(self, service, endpoint_url=None, region_name=None):
            assert service == "s3"
            return FakeS3Client(objects)

    settings = PlannerSettings(storage=StorageSettings(s3_bucket="plans", s3_region="eu-west-1"))
    monkeypatch.setattr(storage_module, "get_settings", lambda: settings)
    monkeypatch.setattr(storage_module.aioboto3, "Session", FakeSession)
    return objects


@pytest.mark.asyncio
async def test_s3_reports_are_read_back(s3_objects):
    storage = ArtifactStorage()

    ref = await storage.put_json({"planId": "p-1", "summary": {"items": 3}})

    assert ref.startswith("s3://plans/reports/")
    assert await storage.get_json(ref) == {"planId": "p-1", "summary": {"items": 3}}


@pytest.mark.asyncio
async def test_missing_s3_report_reads_as_none(s3_objects):
    assert await ArtifactStorage().get_json("s3://plans/reports/gone.json") is None


@pytest.mark.asyncio
async def test_local_reports_round_trip_through_the_artifact_dir(monkeypatch, tmp_path):
    settings = PlannerSettings(storage=StorageSettings(artifact_dir=str(tmp_path)))
    monkeypatch.setattr(storage_module, "get_settings", lambda: settings)
    storage = ArtifactStorage()

    ref = await storage.put_json({"planId": "p-2"})

    assert ref.startswith(f"file://{tmp_path}")
    assert await storage.get_json(ref) == {"planId": "p-2"}
    assert await storage.get_json(f"file://{tmp_path}/missing.json") is None
