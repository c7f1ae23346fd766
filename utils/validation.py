"""
Input validation and sanitization for TestFlow AI requests.

Every check reports a human-readable reason; sanitize_request() collects them
as "<Field>: <reason>" strings so the API can return them all at once.
"""

import ipaddress
import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from pydantic import BaseModel

from config import settings
from models import SanitizedRequest

MAX_URL_LENGTH = 2048
MAX_DESCRIPTION_LENGTH = 10000
MAX_SCREENSHOT_CHARS = int(10 * 1024 * 1024 * 1.5)  # 10MB binary, base64 is ~33% larger

SCREENSHOT_PREFIX = "data:image/png;base64,"

BLOCKED_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}
INTERNAL_HOST_MARKERS = ("internal", "intranet", "corp", "company", "enterprise")

PRIVATE_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
]

SUSPICIOUS_URL_PATTERNS = [
    re.compile(r"\.\."),  # Directory traversal
    re.compile(r"[<>'\"]"),  # HTML injection
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
]

DESCRIPTION_STRIP_PATTERN = re.compile(r"[<>\"'`\\\x00]")

DOM_DATA_LIST_FIELDS = ("headings", "buttons", "inputs", "links")


class ValidationResult(BaseModel):
    is_valid: bool
    error: Optional[str] = None
    sanitized_value: Optional[str] = None


def is_private_ip(hostname: str) -> bool:
    """True for dotted IPv4 literals in 10/8, 172.16/12, 192.168/16 or 127/8."""
    try:
        address = ipaddress.IPv4Address(hostname)
    except ValueError:
        return False
    return any(address in network for network in PRIVATE_NETWORKS)


def validate_url(url: Any, production: Optional[bool] = None) -> ValidationResult:
    """
    Validate a target URL.

    Args:
        url: Raw value from the request body
        production: Override for production mode (defaults to settings)

    Returns:
        ValidationResult with the trimmed URL on success
    """
    if not url or not isinstance(url, str):
        return ValidationResult(is_valid=False, error="URL is required and must be a string")

    trimmed_url = url.strip()

    if len(trimmed_url) > MAX_URL_LENGTH:
        return ValidationResult(
            is_valid=False, error=f"URL is too long (max {MAX_URL_LENGTH} characters)"
        )

    try:
        parsed_url = urlparse(trimmed_url)
        hostname = (parsed_url.hostname or "").lower()
    except ValueError:
        return ValidationResult(is_valid=False, error="Invalid URL format")

    if parsed_url.scheme not in ("http", "https"):
        return ValidationResult(is_valid=False, error="Only HTTP and HTTPS URLs are allowed")

    if not hostname:
        return ValidationResult(is_valid=False, error="Invalid URL format")

    if production is None:
        production = settings.is_production

    if production:
        if hostname in BLOCKED_HOSTS:
            return ValidationResult(
                is_valid=False, error="Localhost URLs are not allowed in production"
            )

        if is_private_ip(hostname):
            return ValidationResult(
                is_valid=False, error="Private IP addresses are not allowed"
            )

        if any(marker in hostname for marker in INTERNAL_HOST_MARKERS):
            return ValidationResult(
                is_valid=False, error="Internal network URLs are not allowed"
            )

    for pattern in SUSPICIOUS_URL_PATTERNS:
        if pattern.search(trimmed_url):
            return ValidationResult(
                is_valid=False, error="URL contains potentially malicious content"
            )

    return ValidationResult(is_valid=True, sanitized_value=trimmed_url)


def validate_user_description(description: Any) -> ValidationResult:
    """Optional free text: length-capped and stripped of injection characters."""
    if not description or not isinstance(description, str):
        return ValidationResult(is_valid=True, sanitized_value="")

    trimmed = description.strip()

    if len(trimmed) > MAX_DESCRIPTION_LENGTH:
        return ValidationResult(
            is_valid=False, error="Description is too long (max 10,000 characters)"
        )

    sanitized = DESCRIPTION_STRIP_PATTERN.sub("", trimmed).strip()

    if len(sanitized) < len(trimmed) * 0.5:
        return ValidationResult(
            is_valid=False, error="Description contains too many invalid characters"
        )

    return ValidationResult(is_valid=True, sanitized_value=sanitized)


def validate_screenshot(screenshot: Any) -> Optional[str]:
    if not isinstance(screenshot, str) or not screenshot.startswith(SCREENSHOT_PREFIX):
        return "Invalid screenshot format"
    if len(screenshot) > MAX_SCREENSHOT_CHARS:
        return "Screenshot is too large"
    return None


def sanitize_request(body: Dict[str, Any], production: Optional[bool] = None) -> SanitizedRequest:
    """
    Validate and sanitize an inbound generation/snapshot request body.

    Returns:
        SanitizedRequest; ``is_valid`` is False when ``errors`` is non-empty
    """
    if not isinstance(body, dict):
        return SanitizedRequest(errors=["Body: Request body must be a JSON object"])

    errors = []
    url = ""
    user_description = ""

    if body.get("url") is not None:
        url_validation = validate_url(body["url"], production=production)
        if url_validation.is_valid:
            url = url_validation.sanitized_value
        else:
            errors.append(f"URL: {url_validation.error}")
    else:
        errors.append("URL: URL is required")

    if body.get("userDescription") is not None:
        description_validation = validate_user_description(body["userDescription"])
        if description_validation.is_valid:
            user_description = description_validation.sanitized_value
        else:
            errors.append(f"Description: {description_validation.error}")

    screenshot = body.get("screenshot")
    if screenshot:
        screenshot_error = validate_screenshot(screenshot)
        if screenshot_error:
            errors.append(f"Screenshot: {screenshot_error}")
            screenshot = None

    dom_data = body.get("domData")
    if dom_data is not None and not isinstance(dom_data, dict):
        errors.append("DOM data: domData must be an object")
        dom_data = None
    elif dom_data is not None:
        for field in DOM_DATA_LIST_FIELDS:
            if dom_data.get(field) is not None and not isinstance(dom_data[field], list):
                errors.append(f"DOM data: {field} must be an array")

    html_elements = body.get("htmlElements")
    if html_elements is not None and not isinstance(html_elements, list):
        html_elements = None
    elif html_elements:
        for idx, element in enumerate(html_elements, 1):
            if not isinstance(element, dict):
                errors.append(f"HTML elements: element {idx} must be an object")
            elif element.get("attributes") is not None and not isinstance(element["attributes"], dict):
                errors.append(f"HTML elements: attributes of element {idx} must be an object")

    return SanitizedRequest(
        url=url,
        user_description=user_description,
        screenshot=screenshot or None,
        dom_data=dom_data,
        html_elements=html_elements,
        errors=errors,
    )
