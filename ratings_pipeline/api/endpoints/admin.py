"""
Admin API Endpoints
Scrape-Jobs, Ingestion-Trigger, Key-Verwaltung und Aufräum-Task (X-Admin-Key)
"""

import logging
import time

from fastapi import APIRouter, Depends, Query, Request

from ratings_pipeline.api.dependencies import get_store, parse_category, require_admin
from ratings_pipeline.api.errors import NotFound
from ratings_pipeline.api.models import APIResponse, respond
from ratings_pipeline.database.store import Store

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])
logger = logging.getLogger("admin_endpoint")


@router.get("/jobs", response_model=APIResponse)
def list_jobs(limit: int = Query(default=20, ge=1, le=100), store: Store = Depends(get_store)):
    """Most recent scrape jobs, newest first"""
    start_time = time.time()
    jobs = store.recent_scrape_jobs(limit)
    return respond([j.model_dump(mode="json") for j in jobs], start_time, count=len(jobs))


@router.get("/jobs/{job_id}", response_model=APIResponse)
def get_job(job_id: str, store: Store = Depends(get_store)):
    start_time = time.time()
    job = store.get_scrape_job(job_id)
    if job is None:
        raise NotFound(f"Scrape job '{job_id}' not found")
    return respond(job.model_dump(mode="json"), start_time)


@router.post("/ingest/{category}", response_model=APIResponse, status_code=202)
def trigger_ingest(category: str):
    """Crawls run outside the serving process; returns the command to run."""
    start_time = time.time()
    cat = parse_category(category)
    logger.info(f"Ingest requested via admin API for {cat.value}")
    return respond(
        {
            "category": cat.value,
            "status": "accepted",
            "command": f"ratings-pipeline ingest --category {cat.value}",
            "note": "Ingestion requires a browser and runs as a separate process.",
        },
        start_time,
    )


@router.post("/keys/{key}/deactivate", response_model=APIResponse)
def deactivate_key(key: str, store: Store = Depends(get_store)):
    start_time = time.time()
    api_key = store.get_api_key(key)
    if api_key is None:
        raise NotFound("API key not found")
    api_key.is_active = False
    store.save_api_key(api_key)
    logger.info(f"Deactivated API key '{api_key.name}'")
    return respond({"key": api_key.key, "is_active": False}, start_time)


@router.post("/cleanup", response_model=APIResponse)
async def run_cleanup(request: Request):
    """Runs the retention tasks now"""
    start_time = time.time()
    registry = request.app.state.task_registry
    deleted_logs = await registry.run("cleanup_request_logs")
    deleted_windows = await registry.run("cleanup_rate_windows")
    return respond({"request_logs_deleted": deleted_logs, "rate_windows_deleted": deleted_windows}, start_time)
