from typing import Optional

from fastapi import APIRouter, HTTPException

from app.models.schemas import CrawlRequest, CrawlResponse
from app.src.crawl_job.job_orchestrator import JobOrchestrator, build_orchestrator
from app.utils.exceptions import (
    CrawlError, DealerBusy, DealerMisconfigured, DealerNotFound, JobNotFound, ResultNotFound,
)

router = APIRouter(prefix="/api", tags=["scrape"])

_orchestrator: Optional[JobOrchestrator] = None


def get_orchestrator() -> JobOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


def close_orchestrator() -> None:
    global _orchestrator
    if _orchestrator is not None:
        _orchestrator.shutdown()
        _orchestrator = None


def status_for(error: CrawlError) -> int:
    if isinstance(error, (DealerNotFound, JobNotFound, ResultNotFound)):
        return 404
    if isinstance(error, DealerMisconfigured):
        return 400
    if isinstance(error, DealerBusy):
        return 409
    return 500


def error_detail(error: CrawlError, job_id: Optional[str] = None) -> dict:
    return {
        "error": type(error).__name__,
        "message": str(error),
        "retryable": error.retryable,
        "jobId": job_id,
    }


def raise_http(error: CrawlError, job_id: Optional[str] = None):
    raise HTTPException(status_code=status_for(error), detail=error_detail(error, job_id))


@router.post("/dealers/{dealer_id}/scrape")
def api_scrape_dealer(dealer_id: str, request: Optional[CrawlRequest] = None):
    orchestrator = get_orchestrator()
    try:
        outcome = orchestrator.run_crawl(dealer_id, request.config if request else None)
    except CrawlError as exc:
        raise_http(exc)

    if not outcome.success:
        raise_http(outcome.error, outcome.job.id)

    response = CrawlResponse(
        success=True,
        message="Crawl completed successfully",
        data=outcome.result,
        job=outcome.job,
    )
    return response.model_dump(mode="json", by_alias=True)


@router.get("/dealers/{dealer_id}/scrape")
def api_get_scrape_info(dealer_id: str):
    orchestrator = get_orchestrator()
    try:
        dealer = orchestrator.dealer_api.get_dealer(dealer_id)
    except CrawlError as exc:
        raise_http(exc)
    if dealer is None:
        raise_http(DealerNotFound(dealer_id))
    return {
        "dealer": {
            "id": dealer.id,
            "name": dealer.name,
            "website_url": dealer.website_url,
            "last_scraped": dealer.last_scraped.isoformat() if dealer.last_scraped else None,
            "vehicle_count": dealer.vehicle_count,
        }
    }


@router.post("/dealers/{dealer_id}/scrape/jobs", status_code=202)
def api_start_scrape_job(dealer_id: str, request: Optional[CrawlRequest] = None):
    orchestrator = get_orchestrator()
    try:
        job = orchestrator.start_crawl(dealer_id, request.config if request else None)
    except CrawlError as exc:
        raise_http(exc)
    return job.model_dump(mode="json", by_alias=True)


@router.get("/dealers/{dealer_id}/crawls")
def api_list_crawl_results(dealer_id: str):
    results = get_orchestrator().result_store.list_by_dealer(dealer_id)
    return {
        "count": len(results),
        "items": [result.model_dump(mode="json", by_alias=True) for result in results],
    }


@router.get("/dealers/{dealer_id}/crawls/latest")
def api_latest_crawl_result(dealer_id: str):
    result = get_orchestrator().result_store.latest(dealer_id)
    if result is None:
        raise HTTPException(status_code=404, detail="No crawl results for this dealer")
    return result.model_dump(mode="json", by_alias=True)


@router.get("/dealers/{dealer_id}/jobs")
def api_list_dealer_jobs(dealer_id: str):
    jobs = get_orchestrator().ledger.list_by_dealer(dealer_id)
    return {"count": len(jobs), "items": [job.model_dump(mode="json", by_alias=True) for job in jobs]}
