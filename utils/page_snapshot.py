"""
Page snapshot capture for TestFlow AI.

Loads the target URL in headless Chromium and returns:
- a full-page PNG screenshot as a base64 data URI
- DOM data for text-only prompts (title, headings, buttons, inputs, links)
- HTML excerpts of interactive elements for element-level prompts

The browser is launched per snapshot and closed on every exit path.
"""

import base64
import logging

from playwright.async_api import async_playwright

from config import settings
from models import DomData, PageSnapshot
from utils.validation import SCREENSHOT_PREFIX

logger = logging.getLogger(__name__)

MAX_SNAPSHOT_LINKS = 20

BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",  # Prevents memory issues in Docker
    "--no-sandbox",  # Required in some containerized environments
    "--disable-setuid-sandbox",
    "--disable-gpu",
]

HEADINGS_JS = """els => els.map(e => (e.textContent || '').trim()).filter(Boolean)"""

BUTTONS_JS = """els => els
    .map(e => (e.textContent || '').trim() || e.getAttribute('value'))
    .filter(Boolean)"""

INPUTS_JS = """els => els.map(e => ({
    name: e.getAttribute('name') || e.getAttribute('id') || '',
    type: e.getAttribute('type') || e.tagName.toLowerCase(),
    placeholder: e.getAttribute('placeholder') || ''
})).filter(el => el.name || el.placeholder)"""

LINKS_JS = """(els, limit) => els.map(e => ({
    text: (e.textContent || '').trim(),
    href: e.getAttribute('href') || ''
})).filter(el => el.text && el.href).slice(0, limit)"""

# Up to 30 of each kind, outerHTML capped at 500 chars
INTERACTIVE_ELEMENTS_JS = """() => {
    const elements = [];
    const attributesOf = el => Array.from(el.attributes).reduce((acc, attr) => {
        acc[attr.name] = attr.value;
        return acc;
    }, {});

    document.querySelectorAll("button, [role='button'], input[type='submit'], input[type='button']")
        .forEach((el, idx) => {
            if (idx < 30) {
                elements.push({
                    type: 'button',
                    html: el.outerHTML.substring(0, 500),
                    text: (el.textContent || '').trim() || el.getAttribute('value') || '',
                    id: el.id || '',
                    className: typeof el.className === 'string' ? el.className : '',
                    attributes: attributesOf(el)
                });
            }
        });

    document.querySelectorAll('input, textarea, select').forEach((el, idx) => {
        if (idx < 30) {
            elements.push({
                type: el.tagName.toLowerCase(),
                html: el.outerHTML.substring(0, 500),
                name: el.getAttribute('name') || el.id || '',
                inputType: el.getAttribute('type') || '',
                placeholder: el.getAttribute('placeholder') || '',
                attributes: attributesOf(el)
            });
        }
    });

    document.querySelectorAll('a[href]').forEach((el, idx) => {
        if (idx < 30) {
            elements.push({
                type: 'link',
                html: el.outerHTML.substring(0, 500),
                text: (el.textContent || '').trim(),
                href: el.getAttribute('href') || '',
                attributes: attributesOf(el)
            });
        }
    });

    return elements;
}"""


async def extract_dom_data(page) -> DomData:
    """Collect the DOM summary used by page-level prompts."""
    title = await page.title()
    headings = await page.eval_on_selector_all("h1, h2, h3", HEADINGS_JS)
    buttons = await page.eval_on_selector_all(
        "button, [role='button'], input[type='submit']", BUTTONS_JS
    )
    inputs = await page.eval_on_selector_all("input, textarea, select", INPUTS_JS)
    links = await page.eval_on_selector_all("a[href]", LINKS_JS, MAX_SNAPSHOT_LINKS)

    return DomData(
        title=title or "",
        headings=headings,
        buttons=buttons,
        inputs=inputs,
        links=links,
    )


async def capture_page_snapshot(url: str) -> PageSnapshot:
    """
    Capture screenshot, DOM data and interactive element HTML for a URL.

    Args:
        url: Already-validated http(s) URL

    Returns:
        PageSnapshot

    Raises:
        RuntimeError: If the browser cannot be launched
        playwright errors: If navigation or extraction fails
    """
    async with async_playwright() as p:
        try:
            browser = await p.chromium.launch(headless=True, args=BROWSER_ARGS)
        except Exception as e:
            logger.error(f"❌ Browser launch failed: {str(e)}")
            raise RuntimeError(f"Failed to launch browser: {str(e)}")

        try:
            page = await browser.new_page(
                viewport={
                    "width": settings.VIEWPORT_WIDTH,
                    "height": settings.VIEWPORT_HEIGHT,
                }
            )

            await page.goto(
                url, wait_until="networkidle", timeout=settings.PAGE_LOAD_TIMEOUT
            )

            buffer = await page.screenshot(type="png", full_page=True)
            screenshot = SCREENSHOT_PREFIX + base64.b64encode(buffer).decode("utf-8")

            dom_data = await extract_dom_data(page)
            html_elements = await page.evaluate(INTERACTIVE_ELEMENTS_JS)

            logger.info(f"📸 Screenshot length: {len(screenshot)}")
            logger.info(f"🔍 Interactive elements found: {len(html_elements)}")

            return PageSnapshot(
                screenshot=screenshot,
                domData=dom_data,
                htmlElements=html_elements,
            )

        finally:
            await browser.close()
