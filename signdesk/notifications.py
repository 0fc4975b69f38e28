"""
Completion notifications to whatever embeds the signing UI.

Two channels, both best-effort and fire-and-forget:
- parent listeners receive the structured CompletionData event
- a host message bridge (when present) receives a plain completion string

The HTTP service attaches neither: its parent channel is the response of
POST /v1/signing/complete, and GET /v1/signing/completion returns the last
event for a page that reconnects. Listeners and the bridge are for embedding
the workspace in-process.
"""
import logging
from collections import deque
from typing import Callable, Deque, List, Optional

from signdesk.models import CompletionData

logger = logging.getLogger(__name__)

COMPLETION_SIGNAL = "signing_complete"

# Completed events kept in memory
MAX_HISTORY = 20

ParentListener = Callable[[CompletionData], None]
BridgeSender = Callable[[str], None]


class CompletionNotifier:
    """Fans a completion event out to the parent context and the host bridge."""

    def __init__(self, bridge: Optional[BridgeSender] = None, max_history: int = MAX_HISTORY):
        self._listeners: List[ParentListener] = []
        self.bridge = bridge
        self.history: Deque[CompletionData] = deque(maxlen=max_history)

    def subscribe(self, listener: ParentListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ParentListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self, event: CompletionData) -> None:
        """Deliver an event. A failing listener never blocks the others."""
        self.history.append(event)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Completion listener failed: {e}")

        if self.bridge is not None:
            try:
                self.bridge(COMPLETION_SIGNAL)
            except Exception as e:
                logger.warning(f"Host bridge message failed: {e}")

    @property
    def last_event(self) -> Optional[CompletionData]:
        return self.history[-1] if self.history else None
