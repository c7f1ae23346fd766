import json
import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from config import settings
from models import SanitizedRequest
from session_store import get_session_store
from utils.page_snapshot import capture_page_snapshot
from utils.rate_limiter import get_rate_limiter
from utils.scan_pipeline import run_scan
from utils.test_generator import generate_element_tests, generate_page_tests
from utils.validation import sanitize_request

logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
GENERIC_FAILURE_MESSAGE = "Error generating tests. Please try again later."


def get_client_identifier(request: Request) -> str:
    return (
        request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
        or "unknown"
    )


def _result_payload(summary: str, **extra: Any) -> Dict[str, Any]:
    payload = {"summary": summary, "tests": []}
    payload.update(extra)
    return payload


def _check_rate_limit(request: Request, result_shape: bool = True) -> Optional[JSONResponse]:
    """Return a 429 response if the caller is over its window, else None."""
    limiter = get_rate_limiter()
    identifier = get_client_identifier(request)
    if limiter.is_allowed(identifier):
        return None

    reset_time = limiter.get_reset_time(identifier)
    content = (
        _result_payload(RATE_LIMIT_MESSAGE, resetTime=reset_time)
        if result_shape
        else {"error": RATE_LIMIT_MESSAGE, "resetTime": reset_time}
    )
    return JSONResponse(status_code=429, content=content)


async def _read_body(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def _validation_failed(sanitized: SanitizedRequest) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=_result_payload(
            f"Validation failed: {', '.join(sanitized.errors)}",
            errors=sanitized.errors,
        ),
    )


@router.get("/")
async def root():
    return {
        "service": "TestFlow AI",
        "status": "running",
        "endpoints": {
            "snapshot": "/snapshot (POST)",
            "page_tests": "/ai-testgen (POST)",
            "element_tests": "/ai-testgen-elements (POST)",
            "scan": "/scan (POST)",
            "scan_async": "/scan/async (POST)",
            "tests": "/tests?url= (GET)",
        },
    }


@router.post("/snapshot")
async def snapshot(request: Request):
    """
    Capture a screenshot, DOM data and interactive element HTML for a URL.

    Returns:
        {"screenshot": "data:image/png;base64,...", "domData": {...}, "htmlElements": [...]}
    """
    limited = _check_rate_limit(request, result_shape=False)
    if limited:
        return limited

    sanitized = sanitize_request(await _read_body(request))
    if not sanitized.is_valid:
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "errors": sanitized.errors},
        )

    try:
        page_snapshot = await capture_page_snapshot(sanitized.url)
        return page_snapshot.model_dump()
    except Exception as e:
        logger.error(f"ERROR: Snapshot failed for {sanitized.url}: {str(e)}")
        traceback.print_exc()
        return JSONResponse(status_code=500, content={"error": "Failed to load page"})


@router.post("/ai-testgen")
async def generate_tests(request: Request):
    """
    Generate page-level Cypress tests from DOM data.

    Model and parsing failures come back as 200 with ``_error: true`` and
    whatever could be scraped from the last response.
    """
    limited = _check_rate_limit(request)
    if limited:
        return limited

    sanitized = sanitize_request(await _read_body(request))
    if not sanitized.is_valid:
        return _validation_failed(sanitized)

    try:
        result = await generate_page_tests(
            sanitized.url, sanitized.user_description, sanitized.dom_data
        )
        return result.to_payload()
    except Exception as e:
        logger.error(f"ERROR: Unexpected failure generating tests for {sanitized.url}: {str(e)}")
        traceback.print_exc()
        return JSONResponse(
            status_code=500,
            content=_result_payload(GENERIC_FAILURE_MESSAGE, _error=True),
        )


@router.post("/ai-testgen-elements")
async def generate_element_specific_tests(request: Request):
    """Generate element-level Cypress tests from interactive element HTML (max 50 used)."""
    limited = _check_rate_limit(request)
    if limited:
        return limited

    sanitized = sanitize_request(await _read_body(request))
    if not sanitized.is_valid:
        return _validation_failed(sanitized)

    if not sanitized.html_elements:
        return JSONResponse(
            status_code=400,
            content=_result_payload(
                "No HTML elements provided or invalid format",
                errors=["HTML elements: No HTML elements provided or invalid format"],
            ),
        )

    try:
        result = await generate_element_tests(
            sanitized.url, sanitized.user_description, sanitized.html_elements
        )
        return result.to_payload()
    except Exception as e:
        logger.error(f"ERROR: Unexpected failure generating element tests for {sanitized.url}: {str(e)}")
        traceback.print_exc()
        return JSONResponse(
            status_code=500,
            content=_result_payload(GENERIC_FAILURE_MESSAGE, _error=True),
        )


@router.post("/scan")
async def scan(request: Request):
    """
    Snapshot the page, generate page and element tests concurrently, merge
    them with previously stored tests for the URL and save the session.
    """
    limited = _check_rate_limit(request)
    if limited:
        return limited

    sanitized = sanitize_request(await _read_body(request))
    if not sanitized.is_valid:
        return _validation_failed(sanitized)

    try:
        response = await run_scan(
            sanitized.url,
            sanitized.user_description,
            user_agent=request.headers.get("user-agent"),
            ip_address=get_client_identifier(request),
        )
        return response.to_payload()
    except Exception as e:
        logger.error(f"ERROR: Scan failed for {sanitized.url}: {str(e)}")
        traceback.print_exc()
        return JSONResponse(
            status_code=500,
            content=_result_payload(
                "Error: Failed to scan page or generate tests.", _error=True
            ),
        )


@router.post("/scan/async")
async def scan_async(request: Request):
    """
    Submit a scan for background processing.
    Returns immediately with a task_id for status polling.
    """
    limited = _check_rate_limit(request)
    if limited:
        return limited

    sanitized = sanitize_request(await _read_body(request))
    if not sanitized.is_valid:
        return _validation_failed(sanitized)

    try:
        from tasks import scan_website as scan_task

        task = scan_task.delay(
            sanitized.url,
            sanitized.user_description,
            request.headers.get("user-agent"),
            get_client_identifier(request),
        )

        return {
            "task_id": task.id,
            "status": "PENDING",
            "message": "Scan task submitted successfully",
            "poll_url": f"/scan/status/{task.id}",
        }

    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Failed to submit scan task: {str(e)}"
        )


@router.get("/scan/status/{task_id}")
async def get_scan_status(task_id: str):
    """
    Check the status of a background scan.

    Returns:
        - PENDING: Task is waiting in queue
        - STARTED: Task is being processed
        - PROGRESS: Task is in progress (includes stage, message, percent)
        - SUCCESS: Task completed successfully (includes result)
        - FAILURE: Task failed (includes error details)
    """
    try:
        from celery.result import AsyncResult
        from celery_app import celery_app

        task = AsyncResult(task_id, app=celery_app)

        response = {
            "task_id": task_id,
            "status": task.state,
        }

        if task.state == "PENDING":
            response["message"] = "Task is waiting in queue"
        elif task.state == "STARTED":
            response["message"] = "Task is being processed"
        elif task.state == "PROGRESS":
            response["message"] = "Task is in progress"
            response["progress"] = task.info
        elif task.state == "SUCCESS":
            response["message"] = "Task completed successfully"
            response["result"] = task.result
        elif task.state == "FAILURE":
            response["message"] = "Task failed"
            response["error"] = str(task.info)
        else:
            response["message"] = f"Unknown state: {task.state}"

        return response

    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Failed to get task status: {str(e)}"
        )


@router.get("/tests")
async def get_latest_tests(url: str = Query(..., description="Page URL")):
    """Latest stored tests for a URL."""
    latest = get_session_store().get_latest_tests_for_url(url)
    if latest is None:
        raise HTTPException(status_code=404, detail="No stored tests for this URL")
    return latest


@router.get("/tests/history")
async def get_test_history(
    url: str = Query(..., description="Page URL"),
    limit: int = Query(settings.HISTORY_LIMIT, ge=1, le=100),
):
    return {"url": url, "sessions": get_session_store().get_test_history_for_url(url, limit)}


@router.delete("/tests/cleanup")
async def cleanup_sessions(
    days_old: int = Query(settings.SESSION_RETENTION_DAYS, ge=0),
):
    """Remove stored sessions older than ``days_old`` days."""
    removed = get_session_store().cleanup_old_sessions(days_old)
    return {"removed": removed, "days_old": days_old}


@router.get("/stats")
async def get_stats():
    return get_session_store().get_stats()


@router.get("/health")
async def health_check():
    return {"status": "healthy"}


@router.get("/status/detailed")
async def detailed_status_check():
    """
    Status check covering Redis, Celery, session storage and model API config.
    """
    status_info = {
        "api": "healthy",
        "redis": "unknown",
        "celery": "unknown",
        "storage": "unknown",
        "anthropic_api": "configured" if settings.ANTHROPIC_API_KEY else "missing",
    }

    # Check Redis connection
    try:
        from redis_client import get_redis_client

        redis_client = get_redis_client()
        if redis_client.ping():
            status_info["redis"] = "connected"
            status_info["redis_stats"] = redis_client.get_stats()
        else:
            status_info["redis"] = "disconnected"
    except Exception as e:
        status_info["redis"] = f"error: {str(e)}"

    # Check Celery workers
    try:
        from celery_app import celery_app

        inspect = celery_app.control.inspect(timeout=1)
        active_workers = inspect.active()

        if active_workers:
            status_info["celery"] = "workers_active"
            status_info["celery_workers"] = list(active_workers.keys())
        else:
            status_info["celery"] = "no_workers"
    except Exception as e:
        status_info["celery"] = f"error: {str(e)}"

    store = get_session_store()
    status_info["storage"] = "redis" if store.is_persistent else "memory"

    critical_components = [
        status_info["redis"],
        status_info["anthropic_api"],
    ]

    if any(
        "error" in str(c) or "missing" in str(c) or "disconnected" in str(c)
        for c in critical_components
    ):
        status_info["overall_status"] = "degraded"
    else:
        status_info["overall_status"] = "healthy"

    return status_info
