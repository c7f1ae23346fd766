"""
Response reconciliation for model output.

Turns free-form, possibly truncated model text into a dictionary with a
``tests`` list. Nothing in here raises on bad input: every entry point
returns ``None`` (or an empty scrape) when no structure can be recovered.

Pipeline for each response:
1. Candidate extraction (fenced block, outer braces, loose regex, verbatim)
2. Structural repair when the model stopped at the token limit
3. Trailing comma cleanup
4. Layered parsing: json.loads -> json5 -> demjson3
"""

import json
import logging
import re
from typing import Callable, Dict, List, Optional, Tuple, Union

import demjson3
import json5

from models import FinishReason

logger = logging.getLogger(__name__)

FENCED_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
LOOSE_OBJECT_PATTERN = re.compile(r"(\{[\s\S]*\})")
TRAILING_COMMA_PATTERN = re.compile(r",(\s*[}\]])")

CLOSERS = {"{": "}", "[": "]"}

# Each cut-back re-parses the whole candidate, so keep it bounded.
MAX_CUTBACKS = 8

SUMMARY_PATTERNS = [
    re.compile(r'"summary"\s*:\s*"([^"]*)"'),
    re.compile(r'summary["\s:]+"([^"]*)"', re.IGNORECASE),
    re.compile(r'summary["\s:]+([^"]+)', re.IGNORECASE),
]

TITLE_PATTERNS = [
    re.compile(r'"title"\s*:\s*"([^"]*)"'),
    re.compile(r'title["\s:]+"([^"]*)"', re.IGNORECASE),
]


# ======================
# Candidate extraction
# ======================

def extract_fenced_block(text: str) -> Optional[str]:
    match = FENCED_BLOCK_PATTERN.search(text)
    return match.group(1) if match else None


def extract_outer_braces(text: str) -> Optional[str]:
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        return text[first_brace : last_brace + 1]
    return None


def extract_loose_object(text: str) -> Optional[str]:
    match = LOOSE_OBJECT_PATTERN.search(text)
    return match.group(1) if match else None


def extract_verbatim(text: str) -> Optional[str]:
    return text.strip() or None


EXTRACTION_STRATEGIES: List[Tuple[str, Callable[[str], Optional[str]]]] = [
    ("fenced block", extract_fenced_block),
    ("outer braces", extract_outer_braces),
    ("loose regex", extract_loose_object),
    ("verbatim", extract_verbatim),
]


# ======================
# Structural repair
# ======================

def _scan_structure(text: str) -> Tuple[List[str], bool, bool, List[int]]:
    """
    Walk the text once, tracking JSON string state.

    Returns:
        (open container stack, ended inside a string, ended on a dangling
        escape, positions of commas that sit outside strings)
    """
    stack: List[str] = []
    commas: List[int] = []
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in CLOSERS:
            stack.append(char)
        elif char in ("}", "]"):
            if stack and CLOSERS[stack[-1]] == char:
                stack.pop()
        elif char == ",":
            commas.append(index)

    return stack, in_string, escaped, commas


def balance_json(text: str) -> str:
    """
    Close whatever the truncated text left open.

    An unterminated string is closed first, then every unmatched brace or
    bracket is closed innermost-first.
    """
    stack, in_string, escaped, _ = _scan_structure(text)

    repaired = text
    if in_string:
        if escaped:
            repaired = repaired[:-1]
        repaired += '"'

    return repaired + "".join(CLOSERS[opener] for opener in reversed(stack))


def repair_truncated_json(text: str) -> List[str]:
    """
    Produce repair variants for a candidate cut off at the token limit.

    The first variant only balances the text. Later variants cut back to
    one of the last few commas outside strings before balancing, which
    drops an incomplete trailing key or element.
    """
    variants = [balance_json(text)]

    _, _, _, commas = _scan_structure(text)
    for position in reversed(commas[-MAX_CUTBACKS:]):
        variant = balance_json(text[:position])
        if variant not in variants:
            variants.append(variant)

    return variants


def strip_trailing_commas(text: str) -> str:
    return TRAILING_COMMA_PATTERN.sub(r"\1", text)


# ======================
# Parsing
# ======================

PARSERS = [
    ("json", json.loads),
    ("json5", json5.loads),
    ("demjson3", demjson3.decode),
]


def _load_json_object(candidate: str) -> Optional[dict]:
    """Run the parser layers in order; only a JSON object counts as success."""
    for name, loader in PARSERS:
        try:
            result = loader(candidate)
        except Exception as e:
            logger.debug(f"❌ {name} parser failed: {str(e)[:120]}")
            continue

        if isinstance(result, dict):
            if name != "json":
                logger.info(f"✅ Parsed model response with {name}")
            return result

    return None


def try_parse_json(
    text: str, finish_reason: Union[FinishReason, str] = FinishReason.STOP
) -> Optional[Dict]:
    """
    Recover a structured result from raw model text.

    Args:
        text: Raw response text from the model
        finish_reason: ``length`` when the model stopped at the token limit

    Returns:
        Parsed dictionary whose ``tests`` value is always a list, or None if
        no extraction strategy produced a parseable object
    """
    if not text:
        return None

    truncated = finish_reason == FinishReason.LENGTH

    for strategy_name, strategy in EXTRACTION_STRATEGIES:
        candidate = strategy(text)
        if not candidate:
            continue

        variants = repair_truncated_json(candidate) if truncated else [candidate]

        for variant in variants:
            parsed = _load_json_object(strip_trailing_commas(variant))
            if parsed is None:
                continue

            if not isinstance(parsed.get("tests"), list):
                parsed["tests"] = []

            logger.debug(f"✅ Strategy '{strategy_name}' recovered the response")
            return parsed

    logger.warning("⚠️  All parsing strategies failed")
    return None


# ======================
# Degraded extraction
# ======================

def extract_partial_data(raw_text: str) -> Dict:
    """
    Best-effort scrape of a response that never parsed.

    Pulls the first summary match and every distinct title. Titles are
    compared verbatim, so near-duplicates differing in case or whitespace
    are all kept.
    """
    partial = {"summary": "", "tests": []}
    if not raw_text:
        return partial

    for pattern in SUMMARY_PATTERNS:
        match = pattern.search(raw_text)
        if match and match.group(1):
            partial["summary"] = match.group(1)
            break

    for pattern in TITLE_PATTERNS:
        seen = set()
        for match in pattern.finditer(raw_text):
            title = match.group(1)
            if title and title not in seen:
                seen.add(title)
                partial["tests"].append(
                    {
                        "title": title,
                        "why": "Test data incomplete - parsing failed",
                        "steps": [],
                        "code": "// Test code could not be parsed. Please try regenerating.",
                    }
                )
        if partial["tests"]:
            break

    return partial
