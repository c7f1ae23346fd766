"""
Tests for the generation attempt loop (utils/test_generator.py)
"""

import anthropic
import httpx
import pytest

from generation_prompt import ELEMENT_STRICT_SUFFIX, PAGE_STRICT_SUFFIX
from models import FinishReason, ModelResponse
from utils.test_generator import (
    INITIAL_TEMPERATURE,
    RETRY_TEMPERATURE,
    TRUNCATION_NOTE,
    TestGenerator,
    generate_element_tests,
    generate_page_tests,
)

VALID = '{"summary": "Covers the form", "tests": [{"title": "Submits", "why": "core", "steps": ["fill"], "code": "cy.get(\'form\').submit()"}]}'
GARBAGE = 'Sorry, "title": "Half test" and nothing else'

API_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def connection_error():
    return anthropic.APIConnectionError(request=API_REQUEST)


def bad_request_error():
    return anthropic.BadRequestError(
        "invalid request",
        response=httpx.Response(400, request=API_REQUEST),
        body=None,
    )


@pytest.mark.asyncio
async def test_first_attempt_success(make_model, sleep_recorder):
    """Test a valid first response needs one call at the initial temperature"""
    model = make_model([VALID])
    generator = TestGenerator(call=model, sleep=sleep_recorder)

    result = await generator.generate("PROMPT", PAGE_STRICT_SUFFIX, max_attempts=3)

    assert result.error is False
    assert result.summary == "Covers the form"
    assert [t.title for t in result.tests] == ["Submits"]
    assert len(model.calls) == 1
    assert model.calls[0]["temperature"] == INITIAL_TEMPERATURE
    assert model.calls[0]["prompt"] == "PROMPT"
    assert sleep_recorder.waits == []


@pytest.mark.asyncio
async def test_parse_failure_switches_to_strict_prompt(make_model, sleep_recorder):
    """Test the retry after garbage appends the strict suffix and lowers temperature"""
    model = make_model([GARBAGE, VALID])
    generator = TestGenerator(call=model, sleep=sleep_recorder)

    result = await generator.generate("PROMPT", PAGE_STRICT_SUFFIX, max_attempts=3)

    assert result.error is False
    assert len(model.calls) == 2
    assert model.calls[1]["prompt"] == "PROMPT" + PAGE_STRICT_SUFFIX
    assert model.calls[1]["temperature"] == RETRY_TEMPERATURE
    assert sleep_recorder.waits == [1]


@pytest.mark.asyncio
async def test_page_generation_stops_after_three_attempts(make_model, sleep_recorder):
    """Test three bad responses give a degraded result scraped from the last one"""
    model = make_model([GARBAGE, GARBAGE, GARBAGE])
    generator = TestGenerator(call=model, sleep=sleep_recorder)

    result = await generator.generate("PROMPT", PAGE_STRICT_SUFFIX, max_attempts=3)

    assert len(model.calls) == 3
    assert sleep_recorder.waits == [1, 2]
    assert result.error is True
    assert result.summary.startswith("⚠️ Failed to parse AI response after 3 attempts")
    assert [t.title for t in result.tests] == ["Half test"]
    assert result.raw_response == GARBAGE


@pytest.mark.asyncio
async def test_transient_error_is_retried_without_strict_prompt(make_model, sleep_recorder):
    """Test a connection error costs an attempt but keeps the plain prompt"""
    model = make_model([connection_error(), VALID])
    generator = TestGenerator(call=model, sleep=sleep_recorder)

    result = await generator.generate("PROMPT", PAGE_STRICT_SUFFIX, max_attempts=3)

    assert result.error is False
    assert len(model.calls) == 2
    assert model.calls[1]["prompt"] == "PROMPT"
    assert model.calls[1]["temperature"] == RETRY_TEMPERATURE


@pytest.mark.asyncio
async def test_exhausted_transient_errors_degrade(make_model, sleep_recorder):
    """Test repeated API failures end in a degraded result instead of raising"""
    model = make_model([connection_error(), connection_error()])
    generator = TestGenerator(call=model, sleep=sleep_recorder)

    result = await generator.generate("PROMPT", ELEMENT_STRICT_SUFFIX, max_attempts=2)

    assert len(model.calls) == 2
    assert result.error is True
    assert result.tests == []
    assert result.summary.startswith("⚠️ AI service request failed after 2 attempts")


@pytest.mark.asyncio
async def test_non_transient_api_error_is_not_retried(make_model, sleep_recorder):
    """Test a 400 from the API degrades immediately"""
    model = make_model([bad_request_error(), VALID])
    generator = TestGenerator(call=model, sleep=sleep_recorder)

    result = await generator.generate("PROMPT", PAGE_STRICT_SUFFIX, max_attempts=3)

    assert len(model.calls) == 1
    assert result.error is True


@pytest.mark.asyncio
async def test_truncated_response_is_repaired_and_noted(make_model, sleep_recorder):
    """Test a length-cut response parses and the summary carries a note"""
    truncated = ModelResponse(
        text='{"summary":"partial","tests":[{"title":"A"',
        finish_reason=FinishReason.LENGTH,
    )
    model = make_model([truncated])
    generator = TestGenerator(call=model, sleep=sleep_recorder)

    result = await generator.generate("PROMPT", PAGE_STRICT_SUFFIX, max_attempts=3)

    assert result.error is False
    assert result.summary == "partial" + TRUNCATION_NOTE
    assert [t.title for t in result.tests] == ["A"]


@pytest.mark.asyncio
async def test_zero_attempts_rejected(make_model):
    """Test max_attempts below one is a caller error"""
    with pytest.raises(ValueError):
        await TestGenerator(call=make_model([])).generate("P", "", max_attempts=0)


@pytest.mark.asyncio
async def test_generate_page_tests_uses_three_attempts(make_model, sleep_recorder):
    """Test page-level generation gives up after three attempts"""
    model = make_model([GARBAGE] * 5)
    generator = TestGenerator(call=model, sleep=sleep_recorder)

    result = await generate_page_tests(
        "https://example.com",
        "check signup",
        {"title": "Home", "headings": ["Welcome"]},
        generator=generator,
    )

    assert len(model.calls) == 3
    assert result.error is True
    assert "https://example.com" in model.calls[0]["prompt"]
    assert "check signup" in model.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_generate_element_tests_uses_two_attempts(make_model, sleep_recorder):
    """Test element-level generation gives up after two attempts"""
    model = make_model([GARBAGE] * 5)
    generator = TestGenerator(call=model, sleep=sleep_recorder)
    elements = [{"type": "button", "html": "<button>Go</button>", "text": "Go"}]

    result = await generate_element_tests(
        "https://example.com", "", elements, generator=generator
    )

    assert len(model.calls) == 2
    assert model.calls[1]["prompt"].endswith(ELEMENT_STRICT_SUFFIX)
    assert result.error is True
