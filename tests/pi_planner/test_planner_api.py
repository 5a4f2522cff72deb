import uuid

import pytest
from httpx import AsyncClient, ASGITransport

from services.pi_planner.app.main import app
from services.pi_planner.app.persistence.db import dispose_engine, init_db


@pytest.fixture(autouse=True)
async def setup_db():
    await init_db()
    yield
    await dispose_engine()


def sample_request(**overrides) -> dict:
    payload = {
        "projectId": "proj-123",
        "runId": str(uuid.uuid4()),
        "items": [
            {"id": "A", "title": "Login form", "size": 3, "acceptanceCriteria": ["User can sign in"]},
            {"id": "B", "title": "Profile page", "size": 4},
            {"id": "C", "title": "Footer links", "kind": "Story"},
        ],
        "edges": [{"fromId": "A", "toId": "B"}],
        "iterations": [{"index": 0, "capacity": 6}, {"index": 1, "capacity": 5}],
        "valueFactors": {
            item_id: {"businessValue": 5, "timeCriticality": 5, "riskReductionOpportunityEnablement": 5}
            for item_id in ("A", "B", "C")
        },
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_plan_and_retrieve():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/plans", json=sample_request())
        assert response.status_code == 201, response.text
        data = response.json()
        plan_id = data["id"]
        assert data["status"] == "Ready"
        assert data["isReady"] is True
        assert data["criticalPath"] == ["A", "B"]
        assert data["criticalPathSize"] == 7

        get_resp = await client.get(f"/plans/{plan_id}")
        assert get_resp.status_code == 200
        assert get_resp.json()["id"] == plan_id

        iterations_resp = await client.get(f"/plans/{plan_id}/iterations")
        assert iterations_resp.status_code == 200
        iterations = iterations_resp.json()
        assert [sorted(it["allocatedItems"]) for it in iterations["iterations"]] == [["A", "C"], ["B"]]
        assert iterations["unallocated"] == []

        graph_resp = await client.get(f"/plans/{plan_id}/graph")
        assert graph_resp.status_code == 200
        graph = graph_resp.json()
        sizes = {node["id"]: node["size"] for node in graph["nodes"]}
        assert sizes == {"A": 3, "B": 4, "C": 3}
        assert [(edge["from"], edge["to"], edge["strength"]) for edge in graph["edges"]] == [("A", "B", "Hard")]

        report_resp = await client.get(f"/plans/{plan_id}/report")
        assert report_resp.status_code == 200
        report = report_resp.json()
        assert report["planId"] == plan_id
        assert report["summary"]["allocated"] == 3
        assert report["validation"]["isReady"] is True


@pytest.mark.asyncio
async def test_rerun_creates_a_new_plan_from_stored_request():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        create_resp = await client.post("/plans", json=sample_request())
        original = create_resp.json()

        rerun_resp = await client.post(f"/plans/{original['id']}/rerun")
        assert rerun_resp.status_code == 201, rerun_resp.text
        rerun = rerun_resp.json()
        assert rerun["id"] != original["id"]
        assert rerun["projectId"] == original["projectId"]
        assert rerun["runId"] != original["runId"]
        assert rerun["status"] == original["status"]


@pytest.mark.asyncio
async def test_cyclic_backlog_is_stored_as_failed():
    edges = [{"fromId": "A", "toId": "B"}, {"fromId": "B", "toId": "A"}]
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/plans", json=sample_request(edges=edges))
        assert response.status_code == 201, response.text
        data = response.json()
        assert data["status"] == "Failed"
        assert [issue["code"] for issue in data["issues"]] == ["CircularDependency"]

        iterations_resp = await client.get(f"/plans/{data['id']}/iterations")
        assert iterations_resp.json()["iterations"] == []


@pytest.mark.asyncio
async def test_unknown_plan_returns_404():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get(f"/plans/{uuid.uuid4()}")
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_decomposition_preview():
    item = {"id": "E", "title": "Checkout", "size": 13, "acceptanceCriteria": ["pay", "refund", "receipt"]}
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/decompositions", json={"item": item, "maxItemSize": 5})
        assert response.status_code == 200, response.text
        data = response.json()
        assert [child["size"] for child in data["children"]] == [5, 4, 4]
        assert [child["parentId"] for child in data["children"]] == ["E", "E", "E"]

        too_big = await client.post("/decompositions", json={"item": {**item, "size": 40}, "maxItemSize": 5})
        assert too_big.status_code == 422
        assert too_big.json()["detail"]["code"] == "SizeTooLargeForSplit"


@pytest.mark.asyncio
async def test_healthz():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/healthz", headers={"X-Correlation-ID": "corr-1"})
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.headers["X-Correlation-ID"] == "corr-1"
