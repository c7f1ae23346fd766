from typing import Any, Dict, List, Optional

# Element excerpts beyond this are dropped to keep the prompt small
MAX_PROMPT_ELEMENTS = 50
MAX_ELEMENT_HTML_CHARS = 200
MAX_EXTRA_ATTRIBUTES = 3
MAX_ATTRIBUTE_VALUE_CHARS = 50
MAX_PROMPT_LINKS = 10

# Attributes already visible in the element HTML excerpt
SKIPPED_ATTRIBUTES = {"class", "id", "name", "type", "href", "placeholder"}

NO_DESCRIPTION = "No specific requirements provided."

PAGE_STRICT_SUFFIX = """

CRITICAL: You MUST return ONLY valid JSON. No explanations, no markdown, no code fences. Start with { and end with }. The JSON must be parseable."""

ELEMENT_STRICT_SUFFIX = """

CRITICAL: Return ONLY valid JSON. No explanations, no markdown."""

JSON_FORMAT = """{
  "summary": "%s",
  "tests": [
    {
      "title": "%s",
      "why": "%s",
      "steps": ["step1", "step2"],
      "code": "%s"
    }
  ]
}"""


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _numbered(items: List[str], template: str = "{}") -> str:
    if not items:
        return "  None"
    return "\n".join(
        f"  {i}. {template.format(item)}" for i, item in enumerate(items, 1)
    )


def format_dom_summary(dom_data: Optional[Dict[str, Any]]) -> str:
    """
    Render extracted DOM data as plain text for text-only models.

    Args:
        dom_data: Dictionary with title, headings, buttons, inputs and links
                  as produced by the page snapshot step.

    Returns:
        Multi-line summary, or a placeholder when no DOM data was captured.
    """
    if not dom_data:
        return "No DOM data available."

    inputs = [
        f"{inp.get('name') or inp.get('placeholder') or 'Unnamed'} ({inp.get('type', '')})"
        for inp in _as_list(dom_data.get("inputs"))
        if isinstance(inp, dict)
    ]
    links = [
        f"\"{link.get('text', '')}\" -> {link.get('href', '')}"
        for link in _as_list(dom_data.get("links"))[:MAX_PROMPT_LINKS]
        if isinstance(link, dict)
    ]

    return f"""
Page Title: {dom_data.get("title") or "N/A"}

Headings found:
{_numbered([str(h) for h in _as_list(dom_data.get("headings"))])}

Buttons found:
{_numbered([str(b) for b in _as_list(dom_data.get("buttons"))], '"{}"')}

Input fields found:
{_numbered(inputs)}

Links found (first {MAX_PROMPT_LINKS}):
{_numbered(links)}
"""


def format_elements_summary(html_elements: List[Dict[str, Any]]) -> str:
    """One numbered line per element: type, trimmed HTML and a few extra attributes."""
    lines = []
    for idx, element in enumerate(html_elements[:MAX_PROMPT_ELEMENTS], 1):
        if not isinstance(element, dict):
            continue

        attributes = element.get("attributes")
        if not isinstance(attributes, dict):
            attributes = {}
        extra = [
            f'{key}="{str(value)[:MAX_ATTRIBUTE_VALUE_CHARS]}"'
            for key, value in attributes.items()
            if key not in SKIPPED_ATTRIBUTES
        ][:MAX_EXTRA_ATTRIBUTES]

        element_type = str(element.get("type") or "element").upper()
        html = str(element.get("html") or "N/A")[:MAX_ELEMENT_HTML_CHARS]
        suffix = f" ({' '.join(extra)})" if extra else ""
        lines.append(f"{idx}. {element_type}: {html}{suffix}")

    return "\n".join(lines)


def get_page_test_prompt(
    url: str, user_description: str = "", dom_data: Optional[Dict[str, Any]] = None
) -> str:
    """
    Build the page-level prompt: whole-page user flows from the DOM summary.

    Returns:
        Complete prompt string asking for 3-5 Cypress tests as bare JSON.
    """
    cypress_examples = f"""
CYPRESS TEST EXAMPLES AND BEST PRACTICES:

1. Basic Page Load Test:
describe('Page Load', () => {{
  it('should load the page successfully', () => {{
    cy.visit('{url}');
    cy.url().should('include', 'expected-path');
    cy.title().should('not.be.empty');
  }});
}});

2. Form Interaction Test:
describe('Form Submission', () => {{
  it('should submit form with valid data', () => {{
    cy.visit('{url}');
    cy.get('input[name="email"]').type('test@example.com');
    cy.get('input[name="password"]').type('password123');
    cy.get('button[type="submit"]').click();
    cy.url().should('include', 'dashboard');
  }});
}});

3. Navigation Test:
describe('Navigation', () => {{
  it('should navigate to different pages', () => {{
    cy.visit('{url}');
    cy.get('a[href="/about"]').click();
    cy.url().should('include', '/about');
  }});
}});

BEST PRACTICES:
- Always use cy.visit() before interacting with elements
- Use data-cy attributes when possible: cy.get('[data-cy="submit-btn"]')
- Wait for elements: cy.get('.element').should('be.visible')
- Use .should() for assertions instead of .then()
- Test user flows, not just individual elements
- Include error cases and edge cases
- Use descriptive test names that explain what is being tested
- Group related tests in describe blocks
"""

    json_format = JSON_FORMAT % (
        "Brief summary of what this page does and key testable features",
        "Descriptive test name",
        "Why this test is important",
        "Complete Cypress test code with describe/it blocks using proper Cypress syntax",
    )

    return f"""You are a QA automation engineer. Analyze the webpage structure and generate Cypress tests.

URL: {url}

{format_dom_summary(dom_data)}

User notes: "{user_description or NO_DESCRIPTION}"

{cypress_examples}

Based on the page structure above, identify:
- Visible UI elements (buttons, forms, links, navigation)
- User interactions that should be tested
- Critical user flows
- Edge cases to consider

Generate 3-5 comprehensive Cypress tests following the examples above. Each test should:
- Be complete and ready to run
- Use proper Cypress commands (cy.visit, cy.get, cy.contains, cy.click, cy.type, cy.should)
- Include assertions to verify expected behavior
- Follow the structure: describe() blocks for grouping, it() blocks for individual tests
- Use descriptive selectors (prefer data-cy, name, id, or text content)
- Test real user interactions and flows

Return **ONLY valid JSON**, do not include any markdown, code fences, or explanations.
JSON format:
{json_format}"""


def get_element_test_prompt(
    url: str, user_description: str, html_elements: List[Dict[str, Any]]
) -> str:
    """Build the element-level prompt: one focused test per interactive element."""
    json_format = JSON_FORMAT % (
        "Brief summary of interactive elements and tests generated",
        "Test name for specific element",
        "Why this element test is important",
        "Complete Cypress test code",
    )

    return f"""You are a QA automation engineer. Generate specific Cypress tests for interactive HTML elements.

URL: {url}

User notes: "{user_description or NO_DESCRIPTION}"

HTML ELEMENTS FOUND:
{format_elements_summary(html_elements)}

Generate Cypress tests that:
1. Test each button's click functionality
2. Test form inputs (typing, validation, submission)
3. Test link navigation
4. Test element visibility and interactivity
5. Use proper selectors (prefer data-cy, id, name, or text content)
6. Include assertions to verify expected behavior

Focus on element-specific interactions rather than full user flows.

CYPRESS EXAMPLES:
describe('Button Interactions', () => {{
  it('should click button and verify action', () => {{
    cy.visit('{url}');
    cy.get('button#submit-btn').should('be.visible').click();
    cy.get('.success-message').should('be.visible');
  }});
}});

describe('Form Inputs', () => {{
  it('should type in input field', () => {{
    cy.visit('{url}');
    cy.get('input[name="email"]').type('test@example.com');
    cy.get('input[name="email"]').should('have.value', 'test@example.com');
  }});
}});

Return **ONLY valid JSON**, no markdown or explanations.
JSON format:
{json_format}"""
