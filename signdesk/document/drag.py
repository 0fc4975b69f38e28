"""
Field dragging in editor mode.

Immediate pointer-capture drag: pointer-down on a field starts the drag, every
pointer-move is a position update for that field only, pointer-up/cancel ends
it. Each update is clamped, so no out-of-page position is ever stored.
"""
import logging
from typing import Optional

from signdesk.document.coordinates import PageGeometry
from signdesk.document.fields import FieldStore
from signdesk.models import SignatureField

logger = logging.getLogger(__name__)


class DragSession:
    """One in-progress drag. Pointer coordinates are display pixels relative to the page."""

    def __init__(
        self,
        store: FieldStore,
        field_id: str,
        geometry: PageGeometry,
        pointer_x: float,
        pointer_y: float,
    ):
        self.store = store
        self.field_id = field_id
        self.geometry = geometry

        field = store.get(field_id)
        if field is None:
            self.active = False
            self.grab_dx = self.grab_dy = 0.0
            return

        left, top = geometry.to_display(field.x, field.y)
        # Where inside the box the pointer grabbed it
        self.grab_dx = pointer_x - left
        self.grab_dy = pointer_y - top
        self.active = True

    def move(self, pointer_x: float, pointer_y: float) -> Optional[SignatureField]:
        """Apply one pointer-move. No-op once ended or if the field vanished."""
        if not self.active:
            return None
        native_x, native_y = self.geometry.to_native(
            pointer_x - self.grab_dx,
            pointer_y - self.grab_dy,
        )
        field = self.store.move_field(
            self.field_id,
            native_x,
            native_y,
            container_width=self.geometry.original_width,
            container_height=self.geometry.original_height,
        )
        if field is None:
            self.active = False
        return field

    def end(self) -> Optional[SignatureField]:
        """Pointer-up or cancel."""
        self.active = False
        field = self.store.get(self.field_id)
        if field is not None:
            logger.debug(f"Drag of {self.field_id[:8]} ended at ({field.x:.1f}, {field.y:.1f})")
        return field
