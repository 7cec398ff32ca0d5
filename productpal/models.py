from __future__ import annotations

from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .utils import generate_id, utc_now_iso

DEFAULT_TITLE = "New Conversation"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys to match the stored snapshot format."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        # JSON-safe dict with aliases; absent optionals are omitted.
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Product(CamelModel):
    """Recommended product; only the name is mandatory."""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    features: Optional[List[str]] = None
    price: Optional[str] = None
    rationale: Optional[str] = None


class ComparisonProduct(CamelModel):
    """One comparison column; values align positionally with Comparison.attributes."""
    name: Optional[str] = None
    values: List[Optional[str]] = Field(default_factory=list)


class Comparison(CamelModel):
    """Attribute-by-product comparison table."""
    attributes: List[str]
    products: List[ComparisonProduct] = Field(default_factory=list)

    def rows(self) -> Iterator[Tuple[str, List[Optional[str]]]]:
        """Purpose: Iterate table rows as (attribute, per-product values).
        Inputs/Outputs: No inputs; yields one tuple per attribute.
        Side Effects / State: None.
        Dependencies: Used by renderers and tests.
        Failure Modes: None; a product with fewer values than attributes yields None
            for the missing cells (unknown, not an error).
        If Removed: Consumers must re-implement positional alignment.
        Testing Notes: Short value lists produce None in trailing cells.
        """
        # Align values[i] with attributes[i]; pad short rows with None.
        for index, attribute in enumerate(self.attributes):
            cells = [
                product.values[index] if index < len(product.values) else None
                for product in self.products
            ]
            yield attribute, cells


class Message(CamelModel):
    """One turn in a conversation."""
    id: str = Field(default_factory=generate_id)
    role: Literal["user", "assistant"]
    content: str
    products: Optional[List[Product]] = None
    comparison: Optional[Comparison] = None
    timestamp: str = Field(default_factory=utc_now_iso)
    error: bool = False

    @model_validator(mode="after")
    def _check_role_payload(self) -> "Message":
        # User turns are plain text; error turns carry no structured data.
        if self.role == "user" and (self.products or self.comparison is not None or self.error):
            raise ValueError("user messages cannot carry products, comparison, or error")
        if self.error and (self.products or self.comparison is not None):
            raise ValueError("error messages cannot carry products or comparison")
        return self

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls,
        content: str,
        products: Optional[List[Product]] = None,
        comparison: Optional[Comparison] = None,
    ) -> "Message":
        """Purpose: Build an assistant message from normalized agent output.
        Inputs/Outputs: Inputs are text, products, comparison; output is a Message.
        Side Effects / State: None.
        Dependencies: Used by MessageFlowController after normalization.
        Failure Modes: None for normalized input.
        If Removed: Successful turns cannot be recorded.
        Testing Notes: An empty product list is stored as absent.
        """
        # Empty product lists are omitted rather than stored as [].
        return cls(
            role="assistant",
            content=content,
            products=list(products) if products else None,
            comparison=comparison,
        )

    @classmethod
    def failure(cls, content: str) -> "Message":
        return cls(role="assistant", content=content, error=True)


class Conversation(CamelModel):
    """Titled, ordered thread of messages plus a correlation session id."""
    id: str
    session_id: str
    title: str = DEFAULT_TITLE
    messages: List[Message] = Field(default_factory=list)
    created_at: str
    updated_at: str


class ConversationSummary(CamelModel):
    """Lightweight conversation summary for sidebar listing."""
    id: str
    title: str
    updated_at: str
    message_count: int


class NormalizedReply(BaseModel):
    """Consistent text/products/comparison triple derived from an agent reply."""
    text: str
    products: List[Product] = Field(default_factory=list)
    comparison: Optional[Comparison] = None


class ChatRequest(BaseModel):
    """Request payload for the chat API."""
    message: str


class SampleDataRequest(BaseModel):
    """Request payload for toggling demonstration data."""
    enabled: bool
