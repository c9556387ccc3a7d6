"""
Pydantic schemas shared by the document adapter modules.

DocumentConfig: Options controlling one Document's load/save cycle
StructureParts: Result of the structural scan run before parsing
AttributeEdit:  One attribute value temporarily rewritten around serialization
"""

import os
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _env_flag(name: str) -> Optional[bool]:
    """Read a tri-state boolean from the environment (unset → None)."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


class DocumentConfig(BaseModel):
    """Options for a Document."""
    version: str = "1.0"                        # XML-declaration style version, kept for round trips
    encoding: Optional[str] = None              # Encoding hint used when no charset is declared in-band
    isolate_noscript: Optional[bool] = None     # None = decide from the libxml2 version
    fragment_boundaries: bool = False           # Serialize subtrees via boundary comments
    huge_tree: bool = False                     # Lift libxml2's tree size limits

    @classmethod
    def from_env(cls, **overrides: Any) -> "DocumentConfig":
        """
        Build a config from AMP_DOM_* environment variables.

        Explicit keyword overrides win over the environment; None overrides are ignored.
        """
        values: dict[str, Any] = {}

        encoding = os.getenv("AMP_DOM_ENCODING")
        if encoding:
            values["encoding"] = encoding

        isolate = _env_flag("AMP_DOM_ISOLATE_NOSCRIPT")
        if isolate is not None:
            values["isolate_noscript"] = isolate

        if _env_flag("AMP_DOM_FRAGMENT_BOUNDARIES"):
            values["fragment_boundaries"] = True

        if _env_flag("AMP_DOM_HUGE_TREE"):
            values["huge_tree"] = True

        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


# --- Structural scan ---

class StructureParts(BaseModel):
    """
    The structural landmarks found in raw HTML text.

    Each field holds the literal matched text, or an empty string when the
    landmark is absent. head and body are complete sections, start to end tag.
    """
    doctype: str = ""
    pre_html: str = ""
    html_start: str = ""
    head: str = ""
    body: str = ""
    html_end: str = ""
    post_html: str = ""


# --- Template token protection ---

class AttributeEdit(BaseModel):
    """An attribute whose value was rewritten and must be put back after saving."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    element: Any = Field(description="lxml element owning the attribute")
    name: str
    original: str
