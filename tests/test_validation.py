"""
Tests for request validation and sanitization
"""

import pytest

from utils.validation import (
    MAX_SCREENSHOT_CHARS,
    SCREENSHOT_PREFIX,
    is_private_ip,
    sanitize_request,
    validate_url,
    validate_user_description,
)


@pytest.mark.parametrize(
    "url",
    ["https://example.com", "http://example.com/path?q=1", "  https://shop.example.org  "],
)
def test_valid_urls(url):
    """Test public http(s) URLs pass and are trimmed"""
    result = validate_url(url, production=True)
    assert result.is_valid
    assert result.sanitized_value == url.strip()


@pytest.mark.parametrize(
    "url, error",
    [
        (None, "URL is required and must be a string"),
        (123, "URL is required and must be a string"),
        ("ftp://example.com", "Only HTTP and HTTPS URLs are allowed"),
        ("javascript:alert(1)", "Only HTTP and HTTPS URLs are allowed"),
        ("https://", "Invalid URL format"),
        ("https://example.com/" + "a" * 2048, "URL is too long (max 2048 characters)"),
        ("https://example.com/../etc/passwd", "URL contains potentially malicious content"),
        ("https://example.com/<script>", "URL contains potentially malicious content"),
    ],
)
def test_invalid_urls(url, error):
    """Test each rejection reason"""
    result = validate_url(url, production=False)
    assert not result.is_valid
    assert result.error == error


@pytest.mark.parametrize(
    "url, error",
    [
        ("http://localhost:3000", "Localhost URLs are not allowed in production"),
        ("http://127.0.0.1", "Localhost URLs are not allowed in production"),
        ("http://10.1.2.3", "Private IP addresses are not allowed"),
        ("http://192.168.1.10/admin", "Private IP addresses are not allowed"),
        ("http://172.20.0.5", "Private IP addresses are not allowed"),
        ("https://intranet.example.com", "Internal network URLs are not allowed"),
    ],
)
def test_production_blocks_local_targets(url, error):
    """Test local and private targets are blocked only in production"""
    assert validate_url(url, production=True).error == error
    assert validate_url(url, production=False).is_valid


def test_is_private_ip_ignores_hostnames():
    """Test only IPv4 literals count as private"""
    assert is_private_ip("172.31.255.255")
    assert not is_private_ip("172.32.0.1")
    assert not is_private_ip("example.com")


def test_description_is_stripped_of_injection_characters():
    """Test angle brackets and quotes are removed"""
    result = validate_user_description('  Check the "signup" <form>  ')
    assert result.is_valid
    assert result.sanitized_value == "Check the signup form"


def test_description_mostly_invalid_characters_rejected():
    """Test a description that loses more than half its length is rejected"""
    result = validate_user_description("<<<>>>\"\"''ab")
    assert not result.is_valid
    assert result.error == "Description contains too many invalid characters"


def test_description_too_long():
    """Test the 10,000 character cap"""
    result = validate_user_description("a" * 10001)
    assert result.error == "Description is too long (max 10,000 characters)"


def test_empty_description_is_valid():
    """Test a missing description sanitizes to an empty string"""
    assert validate_user_description(None).sanitized_value == ""


def test_sanitize_request_success():
    """Test a well-formed body keeps its fields"""
    body = {
        "url": "https://example.com",
        "userDescription": "Test login",
        "screenshot": SCREENSHOT_PREFIX + "AAAA",
        "domData": {"title": "Home"},
        "htmlElements": [{"type": "button", "html": "<button>Go</button>"}],
    }

    sanitized = sanitize_request(body, production=True)

    assert sanitized.is_valid
    assert sanitized.url == "https://example.com"
    assert sanitized.user_description == "Test login"
    assert sanitized.dom_data == {"title": "Home"}
    assert len(sanitized.html_elements) == 1


def test_sanitize_request_collects_every_error():
    """Test field errors are reported together with a field prefix"""
    body = {
        "url": "ftp://example.com",
        "userDescription": "x" * 10001,
        "screenshot": "data:image/jpeg;base64,AAAA",
        "domData": "not an object",
    }

    sanitized = sanitize_request(body)

    assert not sanitized.is_valid
    assert sanitized.errors == [
        "URL: Only HTTP and HTTPS URLs are allowed",
        "Description: Description is too long (max 10,000 characters)",
        "Screenshot: Invalid screenshot format",
        "DOM data: domData must be an object",
    ]


def test_sanitize_request_missing_url():
    """Test a body without url is rejected"""
    assert sanitize_request({}).errors == ["URL: URL is required"]


@pytest.mark.parametrize("body", [None, [], "https://example.com"])
def test_sanitize_request_non_object_body(body):
    """Test a body that is not a JSON object is rejected"""
    assert sanitize_request(body).errors == ["Body: Request body must be a JSON object"]


def test_oversized_screenshot_rejected():
    """Test the screenshot size cap"""
    body = {
        "url": "https://example.com",
        "screenshot": SCREENSHOT_PREFIX + "A" * MAX_SCREENSHOT_CHARS,
    }
    assert sanitize_request(body).errors == ["Screenshot: Screenshot is too large"]


def test_html_elements_must_be_a_list():
    """Test a non-list htmlElements value is dropped"""
    sanitized = sanitize_request({"url": "https://example.com", "htmlElements": "x"})
    assert sanitized.is_valid
    assert sanitized.html_elements is None


@pytest.mark.parametrize(
    "dom_data, error",
    [
        ({"links": "not-a-list"}, "DOM data: links must be an array"),
        ({"inputs": {"name": "email"}}, "DOM data: inputs must be an array"),
        ({"headings": 5}, "DOM data: headings must be an array"),
        ({"buttons": "Sign up"}, "DOM data: buttons must be an array"),
    ],
)
def test_dom_data_list_fields_must_be_arrays(dom_data, error):
    """Test a mistyped domData collection is reported instead of reaching the prompt"""
    sanitized = sanitize_request({"url": "https://example.com", "domData": dom_data})
    assert sanitized.errors == [error]


def test_html_element_attributes_must_be_an_object():
    """Test element attributes of the wrong type are reported per element"""
    body = {
        "url": "https://example.com",
        "htmlElements": [
            {"type": "button", "html": "<button>Go</button>", "attributes": {"id": "go"}},
            {"type": "a", "html": "<a>x</a>", "attributes": ["href"]},
            "junk",
        ],
    }
    assert sanitize_request(body).errors == [
        "HTML elements: attributes of element 2 must be an object",
        "HTML elements: element 3 must be an object",
    ]
