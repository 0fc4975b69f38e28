"""
Field Store - the ordered collection of placed fields.

The store is the only owner of field state. Order is insertion order; pages
are a plain foreign key on each field. Operations on an id that no longer
exists are silent no-ops and return None.
"""
import logging
from datetime import date
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from signdesk.document.coordinates import (
    DEFAULT_PAGE_HEIGHT,
    DEFAULT_PAGE_WIDTH,
    clamp_position,
)
from signdesk.models import FieldType, SignatureField, default_size
from signdesk.utils.datetime_utils import format_field_date, local_today

logger = logging.getLogger(__name__)


class FieldError(Exception):
    """Invalid field operation (e.g. page outside the document)."""

    def __init__(self, message: str, code: str = "INVALID_FIELD"):
        super().__init__(message)
        self.code = code
        self.message = message


class FieldStore:
    """In-memory, insertion-ordered field collection for one document."""

    def __init__(
        self,
        page_sizes: Optional[Dict[int, Tuple[float, float]]] = None,
        today: Callable[[], date] = local_today,
    ):
        self._fields: List[SignatureField] = []
        self._page_sizes: Dict[int, Tuple[float, float]] = dict(page_sizes or {})
        self._today = today

    # -- pages ---------------------------------------------------------------

    def set_pages(self, page_sizes: Dict[int, Tuple[float, float]]) -> None:
        """Register native page sizes (1-indexed) of the loaded document."""
        self._page_sizes = dict(page_sizes)

    @property
    def page_count(self) -> int:
        return len(self._page_sizes)

    def page_size(self, page: int) -> Tuple[float, float]:
        return self._page_sizes.get(page, (DEFAULT_PAGE_WIDTH, DEFAULT_PAGE_HEIGHT))

    def check_page(self, page: int) -> None:
        if not isinstance(page, int) or page < 1:
            raise FieldError(
                f"Invalid page number: {page}. Must be an integer >= 1.",
                code="INVALID_PAGE_NUMBER",
            )
        if self._page_sizes and page not in self._page_sizes:
            raise FieldError(
                f"Page {page} does not exist. Document has {self.page_count} pages.",
                code="PAGE_OUT_OF_RANGE",
            )

    def today_value(self) -> str:
        return format_field_date(self._today())

    # -- queries -------------------------------------------------------------

    @property
    def fields(self) -> List[SignatureField]:
        return list(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[SignatureField]:
        return iter(list(self._fields))

    def get(self, field_id: str) -> Optional[SignatureField]:
        for field in self._fields:
            if field.id == field_id:
                return field
        return None

    def fields_on_page(self, page: int) -> List[SignatureField]:
        return [f for f in self._fields if f.page == page]

    def filled_fields(self, field_type: FieldType) -> List[SignatureField]:
        return [f for f in self._fields if f.type == field_type and f.is_filled and f.value]

    def remaining(self, field_type: FieldType) -> int:
        return sum(1 for f in self._fields if f.type == field_type and not f.is_filled)

    @property
    def all_filled(self) -> bool:
        return bool(self._fields) and all(f.is_filled for f in self._fields)

    # -- mutations -----------------------------------------------------------

    def add_field(self, x: float, y: float, page: int, field_type: FieldType) -> SignatureField:
        """
        Place a new field at (x, y) in native points.

        Date fields are created already filled with today's date. The box is
        kept inside the page.
        """
        field_type = FieldType(field_type)
        self.check_page(page)
        width, height = default_size(field_type)
        page_w, page_h = self.page_size(page)
        x, y = clamp_position(x, y, width, height, page_w, page_h)

        is_date = field_type == FieldType.DATE
        field = SignatureField(
            type=field_type,
            page=page,
            x=x,
            y=y,
            width=width,
            height=height,
            is_filled=is_date,
            value=self.today_value() if is_date else None,
        )
        self._fields.append(field)
        logger.info(f"Added {field_type.value} field {field.id[:8]} on page {page} at ({x:.1f}, {y:.1f})")
        return field

    def move_field(
        self,
        field_id: str,
        x: float,
        y: float,
        page: Optional[int] = None,
        container_width: Optional[float] = None,
        container_height: Optional[float] = None,
    ) -> Optional[SignatureField]:
        """
        Move a field, clamped to its containing page.

        The container defaults to the native size of the target page; pass
        an explicit container when coordinates are in another space.
        """
        field = self.get(field_id)
        if field is None:
            return None

        target_page = field.page if page is None else page
        self.check_page(target_page)
        page_w, page_h = self.page_size(target_page)
        if container_width is None:
            container_width = page_w
        if container_height is None:
            container_height = page_h

        field.x, field.y = clamp_position(
            x, y, field.width, field.height, container_width, container_height
        )
        field.page = target_page
        return field

    def delete_field(self, field_id: str) -> Optional[SignatureField]:
        """Remove a field. Confirmation is the caller's concern."""
        field = self.get(field_id)
        if field is None:
            return None
        self._fields.remove(field)
        logger.info(f"Deleted {field.type.value} field {field_id[:8]}")
        return field

    def change_field_type(self, field_id: str, new_type: FieldType) -> Optional[SignatureField]:
        """
        Retype a field and reset its size to the new type's default.

        Becoming a date fills it with today's date; leaving date (or switching
        between signature and initial) clears the value.
        """
        field = self.get(field_id)
        if field is None:
            return None
        new_type = FieldType(new_type)
        if new_type == field.type:
            return field

        field.type = new_type
        field.width, field.height = default_size(new_type)
        if new_type == FieldType.DATE:
            field.value = self.today_value()
            field.is_filled = True
        else:
            field.value = None
            field.is_filled = False

        # Growing the box may push it past the page edge
        page_w, page_h = self.page_size(field.page)
        field.x, field.y = clamp_position(field.x, field.y, field.width, field.height, page_w, page_h)
        return field

    def set_value(self, field_id: str, value: str) -> Optional[SignatureField]:
        """Fill a single field."""
        field = self.get(field_id)
        if field is None:
            return None
        field.value = value
        field.is_filled = True
        return field

    def fill_dates(self) -> int:
        """Stamp every date field with today's date. Returns how many were touched."""
        today = self.today_value()
        count = 0
        for field in self._fields:
            if field.type == FieldType.DATE:
                field.value = today
                field.is_filled = True
                count += 1
        return count

    def replace_all(self, fields: List[SignatureField]) -> None:
        """Swap in a new field list (layout import)."""
        for field in fields:
            self.check_page(field.page)
        self._fields = list(fields)

    def clamp_to_pages(self) -> int:
        """Pull every field back inside its page after the page sizes changed. Returns how many moved."""
        moved = 0
        for field in self._fields:
            page_w, page_h = self.page_size(field.page)
            x, y = clamp_position(field.x, field.y, field.width, field.height, page_w, page_h)
            if (x, y) != (field.x, field.y):
                field.x, field.y = x, y
                moved += 1
        return moved

    def clear(self) -> None:
        self._fields = []
