from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, List, Protocol

from .utils import utc_now_iso

logger = logging.getLogger("productpal.activity")


class ActivityObserver(Protocol):
    """Processing-indicator collaborator notified by the flow controller."""

    def set_processing(self, processing: bool) -> None:
        ...

    def reset(self) -> None:
        ...


class NullActivityObserver:
    """Observer that ignores every notification."""

    def set_processing(self, processing: bool) -> None:
        return None

    def reset(self) -> None:
        return None


class ActivityTracker:
    """Observer that keeps the processing flag and a bounded event log for the UI panel."""

    def __init__(self, max_events: int = 50) -> None:
        """Purpose: Initialize tracker state.
        Inputs/Outputs: Input is the event log capacity; no return value.
        Side Effects / State: Creates an empty bounded deque.
        Dependencies: Used by the app as the MessageFlowController observer.
        Failure Modes: None.
        If Removed: The activity endpoint has nothing to report.
        Testing Notes: Exceeding max_events drops the oldest entries.
        """
        # Oldest events fall off once capacity is reached.
        self.processing = False
        self._events: Deque[Dict[str, str]] = deque(maxlen=max_events)

    def set_processing(self, processing: bool) -> None:
        self.processing = processing
        self._events.append(
            {"event": "processing_started" if processing else "processing_stopped", "timestamp": utc_now_iso()}
        )
        logger.debug("activity processing=%s", processing)

    def reset(self) -> None:
        # New or switched conversation: clear the panel; an in-flight turn keeps its flag.
        self._events.clear()

    def events(self) -> List[Dict[str, str]]:
        return list(self._events)
