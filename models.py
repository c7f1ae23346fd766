from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# Models
class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"


class ModelResponse(BaseModel):
    """Raw text returned by the model together with why it stopped."""

    text: str = ""
    finish_reason: FinishReason = FinishReason.STOP

    @property
    def truncated(self) -> bool:
        return self.finish_reason == FinishReason.LENGTH


class TestCase(BaseModel):
    __test__ = False  # not a pytest class

    title: str = "Untitled Test"
    why: str = ""  # Rationale shown next to the test
    steps: List[str] = Field(default_factory=list)
    code: str = ""

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["TestCase"]:
        """Build a TestCase from one loosely-typed entry of the model's tests array."""
        if not isinstance(raw, dict):
            return None

        steps = raw.get("steps") or []
        if isinstance(steps, str):
            steps = [steps]
        elif not isinstance(steps, list):
            steps = []

        return cls(
            title=str(raw.get("title") or "Untitled Test"),
            why=str(raw.get("why") or raw.get("description") or ""),
            steps=[str(step) for step in steps],
            code=str(raw.get("code") or ""),
        )


class GenerationResult(BaseModel):
    summary: str = ""
    tests: List[TestCase] = Field(default_factory=list)
    error: bool = False
    raw_response: Optional[str] = None

    @classmethod
    def from_parsed(cls, data: Dict[str, Any]) -> "GenerationResult":
        tests = []
        for raw in data.get("tests") or []:
            test = TestCase.from_raw(raw)
            if test is not None:
                tests.append(test)

        summary = data.get("summary")
        return cls(summary=summary if isinstance(summary, str) else "", tests=tests)

    def to_payload(self) -> Dict[str, Any]:
        """Wire format sent to clients; error fields are underscore-prefixed."""
        payload: Dict[str, Any] = {
            "summary": self.summary,
            "tests": [test.model_dump() for test in self.tests],
        }
        if self.error:
            payload["_error"] = True
        if self.raw_response is not None:
            payload["_rawResponse"] = self.raw_response
        return payload


# Snapshot models
class InputField(BaseModel):
    name: str = ""
    type: str = ""
    placeholder: str = ""


class LinkInfo(BaseModel):
    text: str = ""
    href: str = ""


class DomData(BaseModel):
    title: str = ""
    headings: List[str] = Field(default_factory=list)
    buttons: List[str] = Field(default_factory=list)
    inputs: List[InputField] = Field(default_factory=list)
    links: List[LinkInfo] = Field(default_factory=list)


class PageSnapshot(BaseModel):
    screenshot: str
    domData: DomData
    htmlElements: List[Dict[str, Any]] = Field(default_factory=list)


# Request models
class SanitizedRequest(BaseModel):
    url: str = ""
    user_description: str = ""
    screenshot: Optional[str] = None
    dom_data: Optional[Dict[str, Any]] = None
    html_elements: Optional[List[Any]] = None
    errors: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class ScanResponse(BaseModel):
    url: str
    scanned_at: str
    result: GenerationResult
    general_count: int = 0
    element_count: int = 0
    previous_tests_count: int = 0
    new_tests_added: bool = False
    session_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.result.to_payload()
        payload.update(
            {
                "url": self.url,
                "scannedAt": self.scanned_at,
                "testSources": {
                    "general": self.general_count,
                    "elements": self.element_count,
                },
                "previousTestsCount": self.previous_tests_count,
                "newTestsAdded": self.new_tests_added,
                "sessionId": self.session_id,
            }
        )
        return payload
