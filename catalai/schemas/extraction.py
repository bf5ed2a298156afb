"""
Data models for structured attribute extraction results.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN = "unknown"

AttributeScalar = Union[bool, int, float, str]


class AttributeValue(BaseModel):
    """A single attribute and the reason it was given that value."""

    model_config = ConfigDict(frozen=True)

    value: AttributeScalar = UNKNOWN
    explanation: str = "Insufficient information provided"

    @property
    def is_known(self) -> bool:
        return not (isinstance(self.value, str) and self.value.strip().lower() == UNKNOWN)


class ExtractedAttributes(BaseModel):
    """
    Every required attribute name, each resolved or carrying the sentinel.

    ``extraction_error`` is set when the model output could not be parsed;
    the attribute map is still complete in that case.
    """

    model_config = ConfigDict(frozen=True)

    attributes: dict[str, AttributeValue] = Field(default_factory=dict)
    extraction_error: Optional[str] = None

    def __getitem__(self, name: str) -> AttributeValue:
        return self.attributes[name]

    def __contains__(self, name: object) -> bool:
        return name in self.attributes

    def values(self) -> dict[str, Any]:
        """Flatten to ``{name: value}`` for rule evaluation."""
        return {name: attr.value for name, attr in self.attributes.items()}

    @property
    def unresolved(self) -> list[str]:
        return [name for name, attr in self.attributes.items() if not attr.is_known]
