# Utils package - generation, parsing, validation and browser helpers

from .json_parser import extract_partial_data, try_parse_json
from .rate_limiter import RateLimiter, get_rate_limiter
from .test_generator import generate_element_tests, generate_page_tests
from .validation import sanitize_request

__all__ = [
    "extract_partial_data",
    "try_parse_json",
    "RateLimiter",
    "get_rate_limiter",
    "generate_element_tests",
    "generate_page_tests",
    "sanitize_request",
]
