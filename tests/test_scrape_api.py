import pytest
from fastapi.testclient import TestClient

from app.api.routers import scrape
from app.models.models import BackendJobState
from app.server import app
from app.utils.exceptions import BackendUnavailable

from tests.conftest import FakeBackend


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def use_backend(make_orchestrator, monkeypatch):
    def _use(backend, **kwargs):
        orchestrator = make_orchestrator(backend, **kwargs)
        monkeypatch.setattr(scrape, "_orchestrator", orchestrator)
        return orchestrator

    return _use


def test_scrape_dealer_success(client, use_backend, backend):
    use_backend(backend)
    response = client.post("/api/dealers/d1/scrape")
    assert response.status_code == 200

    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Crawl completed successfully"
    assert len(body["data"]["vehicles"]) == 3
    assert body["data"]["metadata"]["totalFound"] == 3
    assert body["data"]["metadata"]["dealerName"] == "Cars For Sale"
    assert body["data"]["vehicles"][0]["imageUrl"] == "https://img.example.com/1.jpg"
    assert body["job"]["status"] == "completed"


def test_scrape_dealer_accepts_crawl_config(client, use_backend, backend):
    use_backend(backend)
    response = client.post(
        "/api/dealers/d1/scrape",
        json={"config": {"selectors": {"vehicleContainer": ".car"}, "options": {"maxItems": 5}}},
    )
    assert response.status_code == 200


def test_scrape_dealer_rejects_invalid_config(client, use_backend, backend):
    use_backend(backend)
    response = client.post("/api/dealers/d1/scrape", json={"config": {"options": {"maxItems": 0}}})
    assert response.status_code == 422
    assert backend.submitted == []


def test_scrape_unknown_dealer_is_404(client, use_backend, backend):
    use_backend(backend)
    response = client.post("/api/dealers/missing/scrape")
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "DealerNotFound"


def test_scrape_dealer_without_website_is_400(client, use_backend, backend):
    use_backend(backend)
    response = client.post("/api/dealers/d2/scrape")
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "DealerMisconfigured"
    assert detail["jobId"] is None


def test_backend_failure_is_500_with_job_id(client, use_backend, ledger):
    use_backend(FakeBackend(submit_error=BackendUnavailable("connection refused")))
    response = client.post("/api/dealers/d1/scrape")
    assert response.status_code == 500

    detail = response.json()["detail"]
    assert detail["error"] == "BackendUnavailable"
    assert detail["retryable"] is True
    assert "connection refused" in detail["message"]
    assert ledger.get(detail["jobId"]).status.value == "failed"


def test_missing_api_key_is_500(client, use_backend):
    use_backend(FakeBackend(api_key=None))
    response = client.post("/api/dealers/d1/scrape")
    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["error"] == "ConfigurationError"
    assert detail["retryable"] is False
    assert detail["message"].startswith("Configuration error")


def test_get_scrape_info(client, use_backend, backend):
    use_backend(backend)
    before = client.get("/api/dealers/d1/scrape").json()["dealer"]
    assert before["vehicle_count"] == 0
    assert before["last_scraped"] is None

    client.post("/api/dealers/d1/scrape")
    after = client.get("/api/dealers/d1/scrape").json()["dealer"]
    assert after["vehicle_count"] == 3
    assert after["last_scraped"] is not None
    assert after["website_url"] == "https://carsforsale.example.com"

    assert client.get("/api/dealers/missing/scrape").status_code == 404


def test_crawl_results_listing(client, use_backend, backend):
    use_backend(backend)
    assert client.get("/api/dealers/d1/crawls/latest").status_code == 404
    assert client.get("/api/dealers/d1/crawls").json() == {"count": 0, "items": []}

    client.post("/api/dealers/d1/scrape")
    client.post("/api/dealers/d1/scrape")

    listing = client.get("/api/dealers/d1/crawls").json()
    assert listing["count"] == 2
    latest = client.get("/api/dealers/d1/crawls/latest").json()
    assert latest["metadata"]["totalFound"] == 3

    jobs = client.get("/api/dealers/d1/jobs").json()
    assert jobs["count"] == 2
    assert {job["status"] for job in jobs["items"]} == {"completed"}


def test_background_job_lifecycle(client, use_backend, backend):
    orchestrator = use_backend(backend)
    response = client.post("/api/dealers/d1/scrape/jobs")
    assert response.status_code == 202

    job_id = response.json()["id"]
    orchestrator.wait(job_id, timeout=5)

    job = client.get(f"/api/jobs/{job_id}").json()
    assert job["status"] == "completed"
    assert job["resultRef"].startswith("d1/")
    assert job["active"] is False

    cancel = client.post(f"/api/jobs/{job_id}/cancel").json()
    assert cancel["cancelled"] is False


def test_cancel_running_job_over_http(client, use_backend, ledger):
    orchestrator = use_backend(FakeBackend(states=[BackendJobState.SCRAPING]), poll_interval=0.05, poll_timeout=30)
    job_id = client.post("/api/dealers/d1/scrape/jobs").json()["id"]

    assert client.get(f"/api/jobs/{job_id}").json()["active"] is True
    assert client.post(f"/api/jobs/{job_id}/cancel").json()["cancelled"] is True

    orchestrator.wait(job_id, timeout=5)
    assert ledger.get(job_id).error_class == "JobCancelled"


def test_unknown_job_is_404(client, use_backend, backend):
    use_backend(backend)
    response = client.get("/api/jobs/does-not-exist")
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "JobNotFound"
    assert client.post("/api/jobs/does-not-exist/cancel").status_code == 404
