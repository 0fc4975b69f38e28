# Document editing and signing state
from signdesk.document.coordinates import (
    PageGeometry,
    clamp_position,
    rescale,
    DEFAULT_PAGE_WIDTH,
    DEFAULT_PAGE_HEIGHT,
)
from signdesk.document.fields import FieldStore, FieldError
from signdesk.document.drag import DragSession
from signdesk.document.layout import (
    LayoutError,
    build_layout,
    export_layout_json,
    parse_layout,
)
from signdesk.document.mode import CredentialCache, ModeController, ModeTransition
from signdesk.document.signing_flow import (
    Activation,
    ActivationAction,
    CaptureError,
    CapturePrompt,
    SigningFlow,
    next_unfilled,
)

__all__ = [
    "PageGeometry",
    "clamp_position",
    "rescale",
    "DEFAULT_PAGE_WIDTH",
    "DEFAULT_PAGE_HEIGHT",
    "FieldStore",
    "FieldError",
    "DragSession",
    "LayoutError",
    "build_layout",
    "export_layout_json",
    "parse_layout",
    "CredentialCache",
    "ModeController",
    "ModeTransition",
    "Activation",
    "ActivationAction",
    "CaptureError",
    "CapturePrompt",
    "SigningFlow",
    "next_unfilled",
]
