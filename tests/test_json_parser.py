"""
Tests for model response reconciliation (utils/json_parser.py)
"""

import pytest

from models import FinishReason
from utils.json_parser import (
    balance_json,
    extract_partial_data,
    repair_truncated_json,
    strip_trailing_commas,
    try_parse_json,
)


@pytest.mark.parametrize(
    "name, text",
    [
        ("plain object", '{"summary": "ok", "tests": []}'),
        ("fenced json block", 'Here is:\n```json\n{"summary":"ok","tests":[]}\n```'),
        ("fenced block without language", '```\n{"summary":"ok","tests":[]}\n```'),
        ("prose around object", 'Sure! {"summary": "ok", "tests": []} Hope this helps.'),
        ("trailing comma", '{"summary": "ok", "tests": [],}'),
        ("line comment", '{"summary": "ok", // comment\n "tests": []}'),
    ],
)
def test_recovers_summary_from_common_shapes(name, text):
    """Test each extraction strategy recovers the same object"""
    parsed = try_parse_json(text)
    assert parsed is not None, name
    assert parsed["summary"] == "ok"
    assert parsed["tests"] == []


def test_fenced_block_followed_by_prose():
    """Test text after the closing fence is ignored"""
    text = 'Here is:\n```json\n{"summary":"ok","tests":[{"title":"A"}]}\n```\nDone.'
    assert try_parse_json(text) == {"summary": "ok", "tests": [{"title": "A"}]}


def test_first_fenced_block_wins_over_later_code_fence():
    """Test a second fenced snippet does not merge into the JSON block"""
    text = (
        "Here is the result:\n"
        '```json\n{"summary":"ok","tests":[{"title":"A"}]}\n```\n'
        "Example cypress.config:\n"
        "```js\nmodule.exports = { e2e: { baseUrl: 'x' } }\n```"
    )
    assert try_parse_json(text) == {"summary": "ok", "tests": [{"title": "A"}]}


def test_truncated_response_is_closed_in_nesting_order():
    """Test a response cut off inside a test entry yields that entry"""
    parsed = try_parse_json(
        '{"summary":"partial","tests":[{"title":"A"', FinishReason.LENGTH
    )

    assert parsed == {"summary": "partial", "tests": [{"title": "A"}]}


def test_truncated_response_not_repaired_without_length_finish():
    """Test repair only runs when the model stopped at the token limit"""
    assert try_parse_json('{"summary":"partial","tests":[{"title":"A"') is None


def test_truncated_inside_string_value():
    """Test an unterminated string is closed before brackets"""
    parsed = try_parse_json(
        '{"summary":"s","tests":[{"title":"Login","code":"cy.visit(', "length"
    )

    assert parsed["tests"] == [{"title": "Login", "code": "cy.visit("}]


def test_truncated_after_complete_entry_keeps_it():
    """Test entries closed before the cut survive truncation repair"""
    parsed = try_parse_json(
        '{"summary":"s","tests":[{"title":"A","why":"w"},{"title":"B","co',
        FinishReason.LENGTH,
    )

    assert parsed is not None
    assert parsed["tests"][0] == {"title": "A", "why": "w"}


def test_dangling_key_dropped_by_cutting_back_to_comma():
    """Test an incomplete trailing key is cut off when balancing alone fails"""
    parsed = try_parse_json('{"a":1,"b":"x","c', FinishReason.LENGTH)

    assert parsed == {"a": 1, "b": "x", "tests": []}


def test_missing_one_closing_brace():
    """Test the balance step appends exactly the missing brace"""
    assert balance_json('{"summary":"s","tests":[]') == '{"summary":"s","tests":[]}'


def test_balance_ignores_brackets_inside_strings():
    """Test braces inside string values do not count as structure"""
    text = '{"code":"if (a) { b[0] }","tests":['
    assert balance_json(text) == text + "]}"


def test_repair_variants_start_with_plain_balance():
    """Test the first repair variant is the balanced text"""
    variants = repair_truncated_json('{"a":1,"b":[1,2')

    assert variants[0] == '{"a":1,"b":[1,2]}'
    assert len(variants) == len(set(variants))


def test_strip_trailing_commas():
    """Test commas before closers are removed"""
    assert strip_trailing_commas('{"a": [1, 2, ], }') == '{"a": [1, 2 ] }'


@pytest.mark.parametrize("tests_value", ['"not a list"', "null", "{}", "3"])
def test_non_list_tests_coerced_to_empty(tests_value):
    """Test a tests value that is not a list becomes []"""
    parsed = try_parse_json('{"summary": "x", "tests": %s}' % tests_value)
    assert parsed["tests"] == []


def test_missing_tests_key_becomes_empty_list():
    """Test an object without tests still parses"""
    assert try_parse_json('{"summary": "only summary"}') == {
        "summary": "only summary",
        "tests": [],
    }


@pytest.mark.parametrize("text", ["", "I cannot help with that.", "[1, 2, 3]"])
def test_unrecoverable_text_returns_none(text):
    """Test prose and non-object JSON are rejected"""
    assert try_parse_json(text) is None


def test_partial_scrape_collects_distinct_titles():
    """Test the degraded scrape keeps the first of duplicate titles"""
    raw = (
        '{"summary": "Checks login", "tests": [{"title": "Login works", "code": "cy.'
        '... "title": "Logout works" ... "title": "Login works"'
    )

    partial = extract_partial_data(raw)

    assert partial["summary"] == "Checks login"
    assert [t["title"] for t in partial["tests"]] == ["Login works", "Logout works"]
    assert partial["tests"][0]["why"] == "Test data incomplete - parsing failed"
    assert partial["tests"][0]["steps"] == []
    assert partial["tests"][0]["code"].startswith("// Test code could not be parsed")


def test_partial_scrape_keeps_near_duplicate_titles():
    """Test titles differing only in case or whitespace are all kept"""
    raw = '"title": "Login works" "title": "login works" "title": "Login works "'

    titles = [t["title"] for t in extract_partial_data(raw)["tests"]]

    assert titles == ["Login works", "login works", "Login works "]


def test_partial_scrape_of_empty_text():
    """Test nothing to scrape gives an empty result"""
    assert extract_partial_data("") == {"summary": "", "tests": []}
