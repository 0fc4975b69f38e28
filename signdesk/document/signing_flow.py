"""
Signing Flow - what happens when the signer activates a field.

- filled signature/initial: reopen capture pre-loaded with the value; applying
  a new image updates every filled field of that type
- unfilled with a saved credential: apply it straight away, flash the
  processing indicator, move on to the next field
- unfilled without one: open a blank capture and wait
- date fields never prompt
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from signdesk.document.fields import FieldStore
from signdesk.document.mode import ModeController
from signdesk.models import FieldType, SignatureField, is_image_value
from signdesk.utils.logging import fingerprint

logger = logging.getLogger(__name__)

DEFAULT_INDICATOR_SECONDS = 0.3
DEFAULT_HIGHLIGHT_SECONDS = 1.5


class CaptureError(Exception):
    """Capture result could not be applied."""

    def __init__(self, message: str, code: str = "INVALID_CAPTURE"):
        super().__init__(message)
        self.code = code
        self.message = message


class ActivationAction(str, Enum):
    NONE = "none"
    AUTO_APPLIED = "auto_applied"
    PROMPT = "prompt"


@dataclass
class CapturePrompt:
    """An open capture dialog for one field."""
    field_id: str
    field_type: FieldType
    existing_value: Optional[str] = None
    editing: bool = False


@dataclass
class Activation:
    action: ActivationAction
    field: Optional[SignatureField] = None
    prompt: Optional[CapturePrompt] = None
    next_field: Optional[SignatureField] = None


def next_unfilled(fields: List[SignatureField]) -> Optional[SignatureField]:
    """First unfilled field in reading order (page, y, x)."""
    for field in sorted(fields, key=lambda f: f.reading_order_key()):
        if not field.is_filled:
            return field
    return None


class SigningFlow:
    """Per-session signing behaviour on top of the store and mode controller."""

    def __init__(
        self,
        store: FieldStore,
        modes: ModeController,
        clock: Callable[[], float] = time.monotonic,
        indicator_seconds: float = DEFAULT_INDICATOR_SECONDS,
        highlight_seconds: float = DEFAULT_HIGHLIGHT_SECONDS,
        on_focus: Optional[Callable[[SignatureField], None]] = None,
    ):
        self.store = store
        self.modes = modes
        self.clock = clock
        self.indicator_seconds = indicator_seconds
        self.highlight_seconds = highlight_seconds
        self.on_focus = on_focus

        self.pending: Optional[CapturePrompt] = None
        self._highlight_id: Optional[str] = None
        self._highlight_until = 0.0
        self._processing_until = 0.0

    @property
    def cache(self):
        return self.modes.cache

    # -- transient UI state ----------------------------------------------------

    @property
    def highlighted_field_id(self) -> Optional[str]:
        if self._highlight_id and self.clock() < self._highlight_until:
            return self._highlight_id
        return None

    @property
    def is_processing(self) -> bool:
        return self.clock() < self._processing_until

    @property
    def complete_available(self) -> bool:
        """'Complete' replaces 'Next Signature' once nothing is left to fill."""
        return self.store.all_filled

    # -- activation ------------------------------------------------------------

    def activate(self, field_id: str) -> Activation:
        """Handle a click on a field in signing mode."""
        if not self.modes.is_signing:
            return Activation(action=ActivationAction.NONE)

        field = self.store.get(field_id)
        if field is None or field.type == FieldType.DATE:
            return Activation(action=ActivationAction.NONE, field=field)

        if field.is_filled:
            self.pending = CapturePrompt(
                field_id=field.id,
                field_type=field.type,
                existing_value=field.value,
                editing=True,
            )
            return Activation(action=ActivationAction.PROMPT, field=field, prompt=self.pending)

        saved = self.cache.get(field.type)
        if saved:
            self.store.set_value(field.id, saved)
            self._processing_until = self.clock() + self.indicator_seconds
            logger.info(f"Auto-applied saved {field.type.value} {fingerprint(saved, 'img_')} to {field.id[:8]}")
            next_field = self.scroll_to_next()
            return Activation(
                action=ActivationAction.AUTO_APPLIED,
                field=field,
                next_field=next_field,
            )

        self.pending = CapturePrompt(field_id=field.id, field_type=field.type)
        return Activation(action=ActivationAction.PROMPT, field=field, prompt=self.pending)

    def apply_capture(self, image_data: str) -> List[SignatureField]:
        """
        Apply the captured image to the pending prompt.

        Returns the fields that changed. Editing a filled field rewrites every
        filled field of the same type; a first apply fills just the one field.
        """
        prompt = self.pending
        if prompt is None:
            raise CaptureError("No capture in progress", code="NO_CAPTURE")
        if not is_image_value(image_data):
            raise CaptureError("Captured value must be an image data URL")

        self.pending = None
        if not self.modes.is_signing:
            return []

        field = self.store.get(prompt.field_id)
        if field is None:
            return []

        self.cache.put(prompt.field_type, image_data)

        if prompt.editing:
            updated = self.store.filled_fields(prompt.field_type)
            for other in updated:
                other.value = image_data
            logger.info(
                f"Replaced {prompt.field_type.value} on {len(updated)} fields "
                f"with {fingerprint(image_data, 'img_')}"
            )
            return updated

        self.store.set_value(field.id, image_data)
        logger.info(f"Applied {prompt.field_type.value} {fingerprint(image_data, 'img_')} to {field.id[:8]}")
        self.scroll_to_next()
        return [field]

    def cancel_capture(self) -> None:
        """Close the capture dialog. No field changes."""
        self.pending = None

    # -- navigation -------------------------------------------------------------

    def scroll_to_next(self) -> Optional[SignatureField]:
        """
        Highlight and focus the next unfilled field in reading order.

        Returns None once everything is filled.
        """
        field = next_unfilled(self.store.fields)
        if field is None:
            self._highlight_id = None
            return None

        self._highlight_id = field.id
        self._highlight_until = self.clock() + self.highlight_seconds
        if self.on_focus is not None:
            self.on_focus(field)
        return field

    def reset(self) -> None:
        self.pending = None
        self._highlight_id = None
        self._highlight_until = 0.0
        self._processing_until = 0.0
