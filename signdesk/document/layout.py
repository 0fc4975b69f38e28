"""
Layout export/import.

A layout describes where fields sit, never what they hold: import always
comes back unfilled, whatever the JSON says.
"""
import json
import logging
from typing import Any, Iterable, Union

from pydantic import ValidationError

from signdesk.models import DocumentLayout, SignatureField
from signdesk.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class LayoutError(Exception):
    """Malformed layout document."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


def build_layout(source_url: str, fields: Iterable[SignatureField]) -> DocumentLayout:
    """Snapshot the current fields (with whatever fill state they have)."""
    return DocumentLayout(
        source_url=source_url,
        fields=[f.model_copy(deep=True) for f in fields],
    )


def export_layout_json(layout: DocumentLayout) -> str:
    """Serialize a layout as pretty-printed camelCase JSON."""
    return json.dumps(
        layout.model_dump(mode="json", by_alias=True, exclude_none=True),
        indent=2,
    )


def layout_file_name() -> str:
    return f"document-layout-{int(utc_now().timestamp() * 1000)}.json"


def _reset_fill(raw_field: Any) -> Any:
    if isinstance(raw_field, dict):
        raw_field = dict(raw_field)
        for key in ("isFilled", "is_filled", "value"):
            raw_field.pop(key, None)
    return raw_field


def parse_layout(data: Union[str, bytes]) -> DocumentLayout:
    """
    Parse layout JSON, resetting every field to unfilled.

    Raises:
        LayoutError: If the JSON is malformed or a field is invalid
    """
    try:
        raw = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise LayoutError(f"Layout is not valid JSON: {e}")

    if not isinstance(raw, dict):
        raise LayoutError("Layout must be a JSON object with a 'fields' list")
    raw_fields = raw.get("fields")
    if not isinstance(raw_fields, list):
        raise LayoutError("Layout must contain a 'fields' list")

    raw = dict(raw)
    raw["fields"] = [_reset_fill(f) for f in raw_fields]

    try:
        layout = DocumentLayout.model_validate(raw)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(loc) for loc in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise LayoutError("Layout contains invalid fields", details={"errors": errors})

    ids = [f.id for f in layout.fields]
    if len(ids) != len(set(ids)):
        raise LayoutError("Layout contains duplicate field ids")

    logger.info(f"Parsed layout with {len(layout.fields)} fields")
    return layout
