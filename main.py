import argparse
import json
import logging
import os
from typing import Optional, Sequence

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from app.config.config import settings
from app.src.crawl_job.job_orchestrator import build_orchestrator
from app.utils.exceptions import CrawlError
from app.utils.utils import Utils
from app.models.schemas import CrawlConfig, CrawlOptions


def setup_logging():
    log_dir = os.path.dirname(settings.LOG_FILE)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        filename=settings.LOG_FILE,
        encoding="utf-8",
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dealer inventory crawl jobs")
    sub = parser.add_subparsers(dest="cmd", required=True)

    crawl = sub.add_parser("crawl", help="Crawl a dealer website and store the vehicles found")
    crawl.add_argument("dealer_id", help="Dealer id in the dealer repository")
    crawl.add_argument("--max-items", type=int, default=None, help="Maximum number of pages to crawl")
    crawl.add_argument("--csv", default=None, help="Also export the vehicles to this CSV file")

    results = sub.add_parser("results", help="Print stored crawl results for a dealer")
    results.add_argument("dealer_id")
    results.add_argument("--latest", action="store_true", help="Only print the most recent result")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser.parse_args(argv)


def run_crawl(dealer_id: str, max_items: Optional[int], csv_path: Optional[str]) -> int:
    orchestrator = build_orchestrator()
    config = CrawlConfig(options=CrawlOptions(max_items=max_items)) if max_items else None
    try:
        outcome = orchestrator.run_crawl(dealer_id, config)
    except CrawlError as exc:
        logging.error(f"❌ Crawl for dealer {dealer_id} not started: {exc}")
        print(f"{type(exc).__name__}: {exc}")
        return 1
    finally:
        orchestrator.shutdown()

    if not outcome.success:
        print(f"Job {outcome.job.id} failed: {outcome.job.error}")
        return 1

    vehicles = outcome.result.vehicles
    if csv_path:
        Utils.save_to_csv([vehicle.model_dump(by_alias=True) for vehicle in vehicles], csv_path)
    print(f"Job {outcome.job.id} completed: {len(vehicles)} vehicles ({outcome.job.result_ref})")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point of the crawl module."""
    args = _parse_args(argv)
    setup_logging()

    if args.cmd == "crawl":
        logging.info(f"Crawl job requested for dealer {args.dealer_id}.")
        return run_crawl(args.dealer_id, args.max_items, args.csv)

    if args.cmd == "results":
        orchestrator = build_orchestrator()
        if args.latest:
            latest = orchestrator.result_store.latest(args.dealer_id)
            items = [latest] if latest else []
        else:
            items = orchestrator.result_store.list_by_dealer(args.dealer_id)
        print(json.dumps([item.model_dump(mode="json", by_alias=True) for item in items], indent=2))
        return 0

    if args.cmd == "serve":
        import uvicorn
        uvicorn.run("app.server:app", host=args.host, port=args.port)
        return 0

    return 2


if __name__ == '__main__':
    raise SystemExit(main())
