"""Agent reply normalization.

Role:
    Turns the hosted agent's loosely typed reply into a NormalizedReply
    (text, products, comparison). The agent's output shape is not stable: it may
    return an object, a JSON string, a double-encoded JSON string, a nested
    wrapper inside the raw HTTP body, or plain prose.

Reply envelope (as produced by the agent gateway):
    - success: bool, False when the call produced no usable payload.
    - response: {"result": object | str, "message": str, ...}
    - error: optional human-readable failure description.
    - raw_response: the undecoded response body, consulted last.

Precedence:
    response.result (object, or JSON string decoding to one, else plain text)
    -> response.message -> raw_response -> fixed fallback sentence.
    Within a candidate object, text keys are probed as response, text, message,
    answer, content.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .extraction import ExtractionStep, FirstMatchChain
from .models import Comparison, ComparisonProduct, NormalizedReply, Product
from .utils import first_text, parse_json

logger = logging.getLogger("productpal.normalizer")

TEXT_KEYS: Tuple[str, ...] = ("response", "text", "message", "answer", "content")

FAILED_CALL_TEXT = "Sorry, I encountered an error. Please try again."
UNFORMATTED_TEXT = "I received your message but couldn't format a response. Please try again."
PROCESSING_ERROR_TEXT = "Sorry, I encountered an error processing the response. Please try again."


@dataclass
class Extraction:
    """Partial normalization result produced by a single strategy."""
    text: str = ""
    products: List[Product] = field(default_factory=list)
    comparison: Optional[Comparison] = None

    def is_empty(self) -> bool:
        return not self.text and not self.products and self.comparison is None


def _coerce_text(value: Any) -> Optional[str]:
    # Strings pass through, numbers are stringified, everything else is absent.
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


def sanitize_product(entry: Any) -> Optional[Product]:
    """Purpose: Convert one raw product entry into a Product, or reject it.
    Inputs/Outputs: Input is any value from a products list; output is Product or None.
    Side Effects / State: None; pure function.
    Dependencies: Uses the Product model and _coerce_text.
    Failure Modes: None; entries without a non-empty string name return None and
        wrong-typed optional fields are dropped instead of failing validation.
    If Removed: A single odd field (numeric price, dict features) would discard the reply.
    Testing Notes: {"name": "X", "price": 10} keeps price "10"; {"price": "1"} is rejected.
    """
    # Require a real name; keep optional fields only when they are usable text.
    if not isinstance(entry, dict):
        return None
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    raw_features = entry.get("features")
    features: Optional[List[str]] = None
    if isinstance(raw_features, list):
        features = [text for text in (_coerce_text(item) for item in raw_features) if text]
    return Product(
        name=name,
        description=_coerce_text(entry.get("description")) or None,
        features=features,
        price=_coerce_text(entry.get("price")) or None,
        rationale=_coerce_text(entry.get("rationale")) or None,
    )


def extract_products(value: Any) -> List[Product]:
    """Purpose: Extract well-formed products from a candidate `products` value.
    Inputs/Outputs: Input is any value; output is a list of Product (possibly empty).
    Side Effects / State: Debug-logs how many entries were dropped.
    Dependencies: Uses sanitize_product.
    Failure Modes: Non-list input returns an empty list; bad entries are dropped
        individually, never the whole list.
    If Removed: Product cards can no longer be rendered from agent replies.
    Testing Notes: One named and one unnamed entry yield a single product.
    """
    # Filter entry by entry so one malformed product does not sink the rest.
    if not isinstance(value, list):
        return []
    products = [product for product in (sanitize_product(entry) for entry in value) if product]
    dropped = len(value) - len(products)
    if dropped:
        logger.debug("normalize products_dropped=%d", dropped)
    return products


def extract_comparison(value: Any) -> Optional[Comparison]:
    """Purpose: Extract a comparison table from a candidate `comparison` value.
    Inputs/Outputs: Input is any value; output is a Comparison or None.
    Side Effects / State: None; pure function.
    Dependencies: Uses Comparison/ComparisonProduct models.
    Failure Modes: Lists, scalars, and objects without a list `attributes` return None.
        Missing or non-text cells become None (unknown).
    If Removed: Comparison tables are never shown.
    Testing Notes: A list-valued comparison is treated as absent.
    """
    # Only a single object with list attributes qualifies.
    if not isinstance(value, dict):
        return None
    attributes = value.get("attributes")
    if not isinstance(attributes, list):
        return None
    columns: List[ComparisonProduct] = []
    raw_products = value.get("products")
    if isinstance(raw_products, list):
        for entry in raw_products:
            if not isinstance(entry, dict):
                continue
            raw_values = entry.get("values")
            values = [_coerce_text(cell) for cell in raw_values] if isinstance(raw_values, list) else []
            columns.append(ComparisonProduct(name=_coerce_text(entry.get("name")), values=values))
    return Comparison(
        attributes=[_coerce_text(attribute) or "" for attribute in attributes],
        products=columns,
    )


def extract_from_object(candidate: Dict[str, Any]) -> Extraction:
    # Text, products, and comparison from one structured candidate.
    return Extraction(
        text=first_text(candidate, TEXT_KEYS) or "",
        products=extract_products(candidate.get("products")),
        comparison=extract_comparison(candidate.get("comparison")),
    )


def decode_result(result: Any) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Purpose: Classify `response.result` as a structured candidate or plain text.
    Inputs/Outputs: Input is the raw result; output is (candidate_object, plain_text),
        at most one of which is set.
    Side Effects / State: None; pure function.
    Dependencies: Uses parse_json.
    Failure Modes: None. Objects pass through; strings decoding to an object become the
        candidate; a double-encoded string is unwrapped once; any other string (prose,
        numbers, lists, malformed JSON) is returned verbatim as plain text.
    If Removed: The normalizer cannot tell a JSON answer from prose.
    Testing Notes: '{"response":"hi"}' -> candidate; 'hello' -> text; 42 -> (None, None).
    """
    # Objects are used directly; strings are decoded at most twice.
    if isinstance(result, dict):
        return result, None
    if not isinstance(result, str):
        return None, None
    parsed_ok, parsed = parse_json(result)
    if parsed_ok and isinstance(parsed, str):
        inner_ok, inner = parse_json(parsed)
        if inner_ok and isinstance(inner, dict):
            return inner, None
        return None, parsed
    if parsed_ok and isinstance(parsed, dict):
        return parsed, None
    return None, result


class ResponseNormalizer:
    """Derive a displayable text/products/comparison triple from any agent reply."""

    def __init__(self) -> None:
        # Fallback cascades, both in priority order.
        self._fallbacks: FirstMatchChain[Extraction] = FirstMatchChain(
            [
                ExtractionStep("response_message", self._from_response_message),
                ExtractionStep("raw_response", self._from_raw_response),
            ]
        )
        self._raw_strategies: FirstMatchChain[Extraction] = FirstMatchChain(
            [
                ExtractionStep("bare_string", self._raw_bare_string),
                ExtractionStep("response_string", self._raw_response_string),
                ExtractionStep("response_result", self._raw_response_result),
            ]
        )

    def normalize(self, reply: Any) -> NormalizedReply:
        """Purpose: Normalize a raw agent reply into text, products, and comparison.
        Inputs/Outputs: Input is the gateway's reply envelope (any shape); output is a
            NormalizedReply whose text is always non-empty.
        Side Effects / State: Emits info/debug logs about which source supplied the text.
        Dependencies: Uses decode_result, extract_from_object, and the fallback chains.
        Failure Modes: Never raises; an unexpected internal error is logged and produces
            a generic apology with empty structured fields.
        If Removed: Assistant messages cannot be built from agent replies.
        Testing Notes: Cover object/string/double-encoded results, key precedence,
            response.message and raw_response fallbacks, and the fixed fallback sentence.
        """
        # Keep the caller safe from any parsing surprise.
        try:
            return self._normalize(reply)
        except Exception:
            logger.exception("normalize status=failed")
            return NormalizedReply(text=PROCESSING_ERROR_TEXT)

    def _normalize(self, reply: Any) -> NormalizedReply:
        # Failed call: surface the gateway's own explanation when it has one.
        if not isinstance(reply, dict) or not reply.get("success") or reply.get("response") is None:
            error = reply.get("error") if isinstance(reply, dict) else None
            text = error if isinstance(error, str) and error else FAILED_CALL_TEXT
            logger.info("normalize source=failed_call")
            return NormalizedReply(text=text)

        response = reply.get("response")
        candidate, plain_text = decode_result(response.get("result") if isinstance(response, dict) else None)
        extraction = Extraction(text=plain_text or "")
        source = "result_text" if plain_text else "none"
        if candidate is not None:
            extraction = extract_from_object(candidate)
            source = "result_object"

        if not extraction.text:
            step_name, fallback = self._fallbacks.run(reply)
            if fallback is not None:
                source = step_name or source
                extraction.text = fallback.text
                if not extraction.products:
                    extraction.products = fallback.products
                if extraction.comparison is None:
                    extraction.comparison = fallback.comparison

        if not extraction.text:
            extraction.text = UNFORMATTED_TEXT
            source = "fallback"

        logger.info(
            "normalize source=%s products=%d comparison=%s",
            source,
            len(extraction.products),
            extraction.comparison is not None,
        )
        return NormalizedReply(
            text=extraction.text,
            products=extraction.products,
            comparison=extraction.comparison,
        )

    def _from_response_message(self, reply: Dict[str, Any]) -> Optional[Extraction]:
        text = first_text(reply.get("response"), ("message",))
        return Extraction(text=text) if text else None

    def _from_raw_response(self, reply: Dict[str, Any]) -> Optional[Extraction]:
        """Purpose: Recover an answer from the undecoded response body.
        Inputs/Outputs: Input is the reply envelope; output is an Extraction or None.
        Side Effects / State: None.
        Dependencies: Uses parse_json and the raw strategy chain.
        Failure Modes: None; an unparseable non-blank body is used verbatim as text.
        If Removed: Replies whose useful content only survives in the raw body are lost.
        Testing Notes: Plain-text body, JSON string body, {"response": "..."} body, and
            {"response": {"result": {...}}} body.
        """
        # Decode the body, or fall back to it verbatim when it is not JSON.
        raw = reply.get("raw_response")
        if isinstance(raw, str):
            parsed_ok, parsed = parse_json(raw)
            if not parsed_ok:
                return Extraction(text=raw) if raw.strip() else None
        elif isinstance(raw, dict):
            parsed = raw
        else:
            return None
        _, extraction = self._raw_strategies.run(parsed)
        return extraction

    def _raw_bare_string(self, parsed: Any) -> Optional[Extraction]:
        if isinstance(parsed, str) and parsed:
            return Extraction(text=parsed)
        return None

    def _raw_response_string(self, parsed: Any) -> Optional[Extraction]:
        text = first_text(parsed, ("response",))
        return Extraction(text=text) if text else None

    def _raw_response_result(self, parsed: Any) -> Optional[Extraction]:
        # Nested wrapper: {"response": {"result": str | object}}.
        if not isinstance(parsed, dict) or not isinstance(parsed.get("response"), dict):
            return None
        inner = parsed["response"].get("result")
        if isinstance(inner, str):
            return Extraction(text=inner) if inner else None
        if isinstance(inner, dict):
            extraction = extract_from_object(inner)
            return None if extraction.is_empty() else extraction
        return None
