"""
Mode Controller - editor/signing state machine with consent gating.

    editor --(consent given)--> signing
    signing -------------------> editor

Entering signing rebuilds the saved credential cache from already-filled
fields and stamps every date field. Entering editor clears the cache but
keeps field values.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from signdesk.document.fields import FieldStore
from signdesk.models import AppMode, FieldType
from signdesk.utils.logging import fingerprint

logger = logging.getLogger(__name__)


class CredentialCache:
    """
    Most recent signature and initial images of the current signing session.

    Never persisted. Reset whenever the session returns to editor mode.
    """

    def __init__(self):
        self.saved_signature: Optional[str] = None
        self.saved_initial: Optional[str] = None

    def get(self, field_type: FieldType) -> Optional[str]:
        if field_type == FieldType.SIGNATURE:
            return self.saved_signature
        if field_type == FieldType.INITIAL:
            return self.saved_initial
        return None

    def put(self, field_type: FieldType, value: str) -> None:
        if field_type == FieldType.SIGNATURE:
            self.saved_signature = value
        elif field_type == FieldType.INITIAL:
            self.saved_initial = value
        else:
            return
        logger.debug(f"Cached {field_type.value} {fingerprint(value, 'img_')}")

    def has(self, field_type: FieldType) -> bool:
        return self.get(field_type) is not None

    def clear(self) -> None:
        self.saved_signature = None
        self.saved_initial = None

    def rebuild(self, store: FieldStore) -> None:
        """Take the first filled field of each type, in store order."""
        self.clear()
        for field_type in (FieldType.SIGNATURE, FieldType.INITIAL):
            filled = store.filled_fields(field_type)
            if filled:
                self.put(field_type, filled[0].value)


@dataclass
class ModeTransition:
    """Outcome of a mode request."""
    mode: AppMode
    changed: bool
    consent_required: bool = False


class ModeController:
    """Two-state machine with one guarded transition."""

    def __init__(self, store: FieldStore, cache: Optional[CredentialCache] = None):
        self.store = store
        self.cache = cache or CredentialCache()
        self.mode = AppMode.EDITOR
        self.consent_given = False
        self.consent_pending = False

    def request_mode(self, new_mode: AppMode) -> ModeTransition:
        """
        Ask to switch mode.

        Switching to signing before consent suspends the transition and
        raises a consent prompt instead; the mode stays as it is.
        """
        new_mode = AppMode(new_mode)
        if new_mode == AppMode.SIGNING and not self.consent_given:
            self.consent_pending = True
            logger.info("Signing mode requested, waiting for consent")
            return ModeTransition(mode=self.mode, changed=False, consent_required=True)
        return self._enter(new_mode)

    def grant_consent(self) -> ModeTransition:
        """Record affirmative consent and finish the suspended transition."""
        self.consent_given = True
        self.consent_pending = False
        logger.info("Consent given")
        return self._enter(AppMode.SIGNING)

    def decline_consent(self) -> ModeTransition:
        """Dismiss the consent prompt without changing mode."""
        self.consent_pending = False
        return ModeTransition(mode=self.mode, changed=False)

    def reset(self) -> None:
        """Back to a fresh editor session (new document loaded)."""
        self.mode = AppMode.EDITOR
        self.consent_given = False
        self.consent_pending = False
        self.cache.clear()

    @property
    def is_signing(self) -> bool:
        return self.mode == AppMode.SIGNING

    def _enter(self, new_mode: AppMode) -> ModeTransition:
        previous = self.mode
        self.mode = new_mode

        if new_mode == AppMode.SIGNING:
            self.cache.rebuild(self.store)
            dated = self.store.fill_dates()
            logger.info(
                f"Entered signing mode: {dated} date fields stamped, "
                f"saved signature={self.cache.has(FieldType.SIGNATURE)}, "
                f"saved initial={self.cache.has(FieldType.INITIAL)}"
            )
        else:
            self.cache.clear()
            logger.info("Entered editor mode, saved credentials cleared")

        return ModeTransition(mode=new_mode, changed=previous != new_mode)
