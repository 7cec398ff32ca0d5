from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

logger = logging.getLogger("productpal.normalizer")

T = TypeVar("T")


@dataclass
class ExtractionStep(Generic[T]):
    """Named extraction strategy; returns a match or None."""
    name: str
    fn: Callable[[Any], Optional[T]]


class FirstMatchChain(Generic[T]):
    """Ordered strategy runner that stops at the first step producing a match."""

    def __init__(self, steps: List[ExtractionStep[T]]) -> None:
        """Purpose: Initialize the chain with strategies in priority order.
        Inputs/Outputs: Input is a list of ExtractionStep; no return value.
        Side Effects / State: Stores the step list for later execution.
        Dependencies: None beyond ExtractionStep definitions.
        Failure Modes: None; assumes valid callables in steps.
        If Removed: Fallback cascades in the normalizer have no shared runner.
        Testing Notes: Provide two matching steps and ensure only the first result is used.
        """
        # Keep the strategies in the order they must be attempted.
        self._steps = steps

    def run(self, value: Any) -> Tuple[Optional[str], Optional[T]]:
        """Purpose: Attempt each step in order and return the first match.
        Inputs/Outputs: Input is the value to decode; output is (step_name, result) or
            (None, None) when no step matches.
        Side Effects / State: Emits a debug log naming the matching step.
        Dependencies: Depends on ExtractionStep.fn returning None for "no match".
        Failure Modes: Exceptions in step functions propagate to the caller.
        If Removed: Decoding falls back to nested if/else cascades.
        Testing Notes: Verify None results fall through to the next step.
        """
        # Short-circuit on the first non-None result.
        for step in self._steps:
            result = step.fn(value)
            if result is not None:
                logger.debug("extraction step=%s status=matched", step.name)
                return step.name, result
        return None, None
