from contextlib import asynccontextmanager
from fastapi import FastAPI

# Routers
from app.api.routers.scrape import router as scrape_router, close_orchestrator
from app.api.routers.jobs import router as jobs_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Stop background crawl workers on shutdown."""
    try:
        yield
    finally:
        close_orchestrator()


app = FastAPI(title="Dealer Inventory Crawler", version="0.1", lifespan=lifespan)

app.include_router(scrape_router)
app.include_router(jobs_router)
