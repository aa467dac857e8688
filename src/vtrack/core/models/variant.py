from typing import Optional
from urllib.parse import urljoin

from pydantic import BaseModel, ConfigDict, field_validator


class Variant(BaseModel):
    """A generated page variant (the artifact a completed job produces).

    Field names follow the backend's snake_case variant schema. Unknown fields
    are kept so nothing the generator adds gets lost on the way to the display.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    variant_label: str = ""
    description: str = ""
    rationale: str = ""
    screenshot: Optional[str] = None
    css_code: str = ""
    html_code: str = ""
    target_selector: str = ""
    injection_method: str = ""
    new_element_html: str = ""
    implementation_notes: str = ""
    accessibility_consideration: str = ""
    implementation_instructions: str = ""

    @field_validator(
        "variant_label",
        "description",
        "rationale",
        "css_code",
        "html_code",
        "target_selector",
        "injection_method",
        "new_element_html",
        "implementation_notes",
        "accessibility_consideration",
        "implementation_instructions",
        mode="before",
    )
    @classmethod
    def _null_as_empty(cls, value):
        return "" if value is None else value


class MergedVariant(BaseModel):
    """Entry of the merged results: the artifact plus the job that produced it."""

    model_config = ConfigDict(frozen=True)

    job_id: Optional[str] = None  # None for variants delivered directly by a tool result
    variant: Variant


def resolve_screenshot_url(screenshot: Optional[str], backend_url: str) -> Optional[str]:
    """Return a loadable URL for a variant screenshot path.

    Absolute http(s) URLs and data URLs are returned unchanged; relative paths
    are served by the backend and get joined to its base URL.
    """
    if not screenshot:
        return None
    if screenshot.startswith(("http://", "https://", "data:")):
        return screenshot
    return urljoin(backend_url.rstrip("/") + "/", screenshot.lstrip("/"))
