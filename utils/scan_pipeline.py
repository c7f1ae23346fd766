"""
End-to-end scan: snapshot a page, generate tests, merge with history, persist.

Page-level and element-level generation run concurrently. Either one failing
leaves the other's result intact; results are combined only after both settle.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import redis

from models import GenerationResult, ScanResponse, TestCase
from session_store import TestSessionStore, get_session_store
from utils.page_snapshot import capture_page_snapshot
from utils.test_generator import generate_element_tests, generate_page_tests

logger = logging.getLogger(__name__)


def _settle(outcome: Union[GenerationResult, BaseException], label: str) -> GenerationResult:
    if isinstance(outcome, BaseException):
        logger.error(f"❌ {label} test generation raised: {str(outcome)}")
        return GenerationResult(
            summary=f"Error generating {label.lower()} tests: {str(outcome) or type(outcome).__name__}",
            error=True,
        )
    return outcome


async def run_generations(
    url: str,
    user_description: str = "",
    dom_data: Optional[Dict[str, Any]] = None,
    html_elements: Optional[List[Dict[str, Any]]] = None,
) -> Tuple[GenerationResult, Optional[GenerationResult]]:
    """
    Run page-level and (when elements exist) element-level generation concurrently.

    Returns:
        (page result, element result or None if there were no elements)
    """
    jobs = [generate_page_tests(url, user_description, dom_data)]
    if html_elements:
        jobs.append(generate_element_tests(url, user_description, html_elements))

    outcomes = await asyncio.gather(*jobs, return_exceptions=True)

    page_result = _settle(outcomes[0], "Page")
    element_result = _settle(outcomes[1], "Element") if len(outcomes) > 1 else None
    return page_result, element_result


def combine_results(
    page_result: GenerationResult, element_result: Optional[GenerationResult] = None
) -> GenerationResult:
    """Concatenate tests (page first) and label each summary section."""
    element_result = element_result or GenerationResult()

    sections = []
    if page_result.summary:
        sections.append("General Tests:\n" + page_result.summary)
    if element_result.summary:
        sections.append("Element Tests:\n" + element_result.summary)

    return GenerationResult(
        summary="\n\n".join(sections) or page_result.summary,
        tests=list(page_result.tests) + list(element_result.tests),
        error=page_result.error or element_result.error,
    )


def merge_with_history(
    previous_tests: List[Dict[str, Any]], new_tests: List[TestCase]
) -> Tuple[List[TestCase], List[TestCase]]:
    """
    Append new tests whose title is not already stored.

    Titles are compared verbatim, so "Login works" and "login works " are
    both kept.

    Returns:
        (combined tests, the new tests that were actually added)
    """
    existing = [t for t in (TestCase.from_raw(raw) for raw in previous_tests) if t]
    existing_titles = {test.title for test in existing}
    unique_new = [test for test in new_tests if test.title not in existing_titles]
    return existing + unique_new, unique_new


async def run_scan(
    url: str,
    user_description: str = "",
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
    store: Optional[TestSessionStore] = None,
) -> ScanResponse:
    """
    Full scan of one URL.

    Raises:
        RuntimeError / playwright errors: When the page snapshot fails.
        Generation failures never raise; they surface as ``result.error``.
    """
    logger.info(f"🚀 Starting scan for {url}")
    snapshot = await capture_page_snapshot(url)

    page_result, element_result = await run_generations(
        url,
        user_description,
        snapshot.domData.model_dump(),
        snapshot.htmlElements,
    )
    combined = combine_results(page_result, element_result)

    logger.info(
        f"Generated {len(combined.tests)} total tests "
        f"({len(page_result.tests)} general + "
        f"{len(element_result.tests) if element_result else 0} element-specific)"
    )

    store = store or get_session_store()
    response = ScanResponse(
        url=url,
        scanned_at=datetime.now(timezone.utc).isoformat(),
        result=combined,
        general_count=len(page_result.tests),
        element_count=len(element_result.tests) if element_result else 0,
    )

    try:
        previous = store.get_latest_tests_for_url(url)
    except redis.RedisError as e:
        logger.error(f"❌ Could not load previous tests for {url}: {str(e)}")
        previous = None

    if previous and previous["tests"] and not combined.error:
        merged, unique_new = merge_with_history(previous["tests"], combined.tests)
        response.result = GenerationResult(
            summary=combined.summary or previous["summary"],
            tests=merged,
        )
        response.previous_tests_count = len(previous["tests"])
        response.new_tests_added = bool(unique_new)
    else:
        response.previous_tests_count = len(combined.tests)

    if not combined.error:
        try:
            saved = store.save_test_session(
                url,
                response.result.tests,
                response.result.summary,
                user_agent=user_agent,
                ip_address=ip_address,
            )
            response.session_id = saved["sessionId"]
        except redis.RedisError as e:
            logger.error(f"❌ Failed to save test session for {url}: {str(e)}")

    return response
