import pytest
from fastapi.testclient import TestClient

from creative_engine.api.deps import get_db, get_dispatcher, get_status_publisher, get_sweep_trigger
from creative_engine.main import app
from creative_engine.models.job import GenerationJob
from creative_engine.services.status import StatusPublisher


class DispatchRecorder:
    def __init__(self, result=True):
        self.result = result
        self.job_ids = []

    def __call__(self, job_id):
        self.job_ids.append(job_id)
        return self.result


@pytest.fixture
def dispatcher():
    return DispatchRecorder()


@pytest.fixture
def client(session_factory, dispatcher):
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_status_publisher] = lambda: StatusPublisher(session_factory)
    # No lifespan: tables come from the test engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def payload(**overrides):
    body = {
        "tenant_id": "tenant-1",
        "providers": ["gemini-image"],
        "brief": "Summer launch for Shampoo Premium 300ml",
        "settings": {"content_type": "image", "environment": "bathroom"},
    }
    body.update(overrides)
    return body


def test_create_generation_queues_and_dispatches(client, dispatcher, add_product, db) -> None:
    add_product("p1", "Shampoo Premium 300ml")

    response = client.post("/api/v1/generations", json=payload())

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "queued"
    assert dispatcher.job_ids == [body["job_id"]]

    job = db.query(GenerationJob).filter(GenerationJob.id == body["job_id"]).one()
    assert job.references[0]["id"] == "p1"
    assert job.final_prompt.startswith("PROFESSIONAL PRODUCT PHOTOGRAPH")
    assert job.settings["schema_version"] == 1


def test_job_stays_queued_when_dispatch_fails(client, add_product) -> None:
    add_product("p1", "Shampoo Premium 300ml")
    app.dependency_overrides[get_dispatcher] = lambda: DispatchRecorder(result=False)

    response = client.post("/api/v1/generations", json=payload())

    assert response.status_code == 202
    assert "next queue sweep" in response.json()["message"]


def test_missing_product_image_is_rejected(client, dispatcher, add_product) -> None:
    add_product("p1", "Shampoo Premium 300ml", with_image=False)

    response = client.post("/api/v1/generations", json=payload())

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert "Shampoo Premium 300ml" in detail["error"]
    assert dispatcher.job_ids == []

    job = client.get(f"/api/v1/jobs/{detail['job_id']}").json()
    assert job["status"] == "failed"


def test_invalid_settings_are_rejected(client, dispatcher) -> None:
    response = client.post("/api/v1/generations", json=payload(settings={"content_type": "image", "x": 1}))
    assert response.status_code == 422
    assert dispatcher.job_ids == []


def test_background_from_outside_storage_is_rejected(client, dispatcher) -> None:
    settings = {"content_type": "image", "background_url": "file:///etc/passwd"}
    response = client.post("/api/v1/generations", json=payload(settings=settings))
    assert response.status_code == 422
    assert dispatcher.job_ids == []


def test_incompatible_provider_is_rejected(client) -> None:
    response = client.post("/api/v1/generations", json=payload(providers=["veo-video"]))
    assert response.status_code == 422
    assert "cannot generate image" in response.json()["detail"]["error"]


def test_job_listing_and_progress(client, create_job) -> None:
    job_id = create_job()

    listing = client.get("/api/v1/jobs", params={"tenant_id": "tenant-1", "job_status": "queued"}).json()
    assert listing["total"] == 1
    assert listing["jobs"][0]["id"] == job_id
    assert listing["jobs"][0]["cost_cents"] == 0

    progress = client.get(f"/api/v1/jobs/{job_id}/progress").json()
    assert progress["status"] == "queued"
    assert progress["current_stage_index"] == 0
    assert progress["total_stages"] == 9

    assert client.get(f"/api/v1/jobs/{job_id}/candidates").json() == []


def test_unknown_job_is_404(client) -> None:
    assert client.get("/api/v1/jobs/gen_missing").status_code == 404
    assert client.get("/api/v1/jobs/gen_missing/progress").status_code == 404
    assert client.get("/api/v1/jobs/gen_missing/candidates").status_code == 404


def test_process_trigger_is_fire_and_forget(client) -> None:
    triggered = []
    app.dependency_overrides[get_sweep_trigger] = lambda: (lambda: triggered.append(True))

    response = client.post("/api/v1/generations/process")

    assert response.status_code == 202
    assert response.json()["dispatched"] is True
    assert triggered == [True]


def test_process_trigger_survives_queue_outage(client) -> None:
    def unavailable():
        raise ConnectionError("redis down")

    app.dependency_overrides[get_sweep_trigger] = lambda: unavailable

    response = client.post("/api/v1/generations/process")
    assert response.status_code == 202
    assert response.json()["dispatched"] is False
