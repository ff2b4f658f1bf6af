from fastapi import APIRouter

from app.api.routers.scrape import get_orchestrator, raise_http
from app.utils.exceptions import CrawlError

router = APIRouter(prefix="/api", tags=["jobs"])


@router.get("/jobs/{job_id}")
def api_get_job(job_id: str):
    orchestrator = get_orchestrator()
    try:
        job = orchestrator.ledger.get(job_id)
    except CrawlError as exc:
        raise_http(exc, job_id)
    payload = job.model_dump(mode="json", by_alias=True)
    payload["active"] = orchestrator.is_active(job_id)
    return payload


@router.post("/jobs/{job_id}/cancel")
def api_cancel_job(job_id: str):
    """Stop polling an active job. The job ends as failed with a cancellation message."""
    orchestrator = get_orchestrator()
    try:
        job = orchestrator.ledger.get(job_id)
    except CrawlError as exc:
        raise_http(exc, job_id)
    cancelled = orchestrator.cancel(job_id)
    return {"cancelled": cancelled, "job": job.model_dump(mode="json", by_alias=True)}
