import uuid
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Image payloads are data URLs; anything else is not a valid signature/initial value
IMAGE_DATA_PREFIX = "data:image"


class CamelModel(BaseModel):
    """Base class for wire models - camelCase JSON, snake_case attributes."""
    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class BaseRequest(CamelModel):
    """Base class for all request models - ignores extra fields."""


# Enums
class FieldType(str, Enum):
    SIGNATURE = "signature"
    INITIAL = "initial"
    DATE = "date"


class AppMode(str, Enum):
    EDITOR = "editor"
    SIGNING = "signing"


# Default box size per field type (width, height), in native PDF points
FIELD_DEFAULT_SIZES: Dict[FieldType, Tuple[float, float]] = {
    FieldType.SIGNATURE: (180.0, 50.0),
    FieldType.INITIAL: (120.0, 40.0),
    FieldType.DATE: (150.0, 35.0),
}


def default_size(field_type: FieldType) -> Tuple[float, float]:
    return FIELD_DEFAULT_SIZES[FieldType(field_type)]


def is_image_value(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(IMAGE_DATA_PREFIX)


# Domain models
class SignatureField(CamelModel):
    """A placed signature, initial or date box on one page."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: FieldType
    page: int = Field(..., ge=1, description="1-indexed page number")
    x: float = Field(..., ge=0, description="Left edge in native PDF points")
    y: float = Field(..., ge=0, description="Top edge in native PDF points (y grows downward)")
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    value: Optional[str] = None
    is_filled: bool = False

    @model_validator(mode="after")
    def _check_fill_invariant(self) -> "SignatureField":
        if self.is_filled:
            if not self.value:
                raise ValueError("A filled field must carry a value")
            if self.type != FieldType.DATE and not is_image_value(self.value):
                raise ValueError(f"A filled {self.type.value} field must carry image data")
        return self

    @property
    def is_image_type(self) -> bool:
        return self.type in (FieldType.SIGNATURE, FieldType.INITIAL)

    def reading_order_key(self) -> Tuple[int, float, float]:
        """Natural reading order: page, then top to bottom, then left to right."""
        return (self.page, self.y, self.x)


class DocumentLayout(CamelModel):
    """Structure of a document's fields, independent of fill state."""
    source_url: str = Field(
        default="",
        alias="sourceUrl",
        validation_alias=AliasChoices("sourceUrl", "pdfUrl", "source_url"),
    )
    fields: List[SignatureField] = Field(default_factory=list)


class CompletionData(CamelModel):
    """Event posted to the embedding parent once signing is complete."""
    status: Literal["completed"] = "completed"
    document_layout: DocumentLayout
    timestamp: str


class PageInfo(CamelModel):
    page: int
    width: float
    height: float


# Request Models
class DisplayGeometry(BaseRequest):
    """
    Size of the page as currently rendered on screen.

    Omit both values when coordinates are already in native PDF points.
    """
    rendered_width: Optional[float] = Field(None, gt=0)
    rendered_height: Optional[float] = Field(None, gt=0)


class AddFieldRequest(DisplayGeometry):
    x: float
    y: float
    page: int = Field(..., ge=1)
    type: FieldType


class MoveFieldRequest(DisplayGeometry):
    x: float
    y: float
    page: Optional[int] = Field(None, ge=1)


class ChangeFieldTypeRequest(BaseRequest):
    type: FieldType


class ModeRequest(BaseRequest):
    mode: AppMode


class StrokePoint(BaseRequest):
    x: float
    y: float


class CaptureRequest(BaseRequest):
    """
    Result of the capture dialog. Exactly one of the three inputs is used:
    a ready image data URL, drawn strokes, or a typed name.
    """
    image_data: Optional[str] = None
    strokes: Optional[List[List[StrokePoint]]] = None
    canvas_width: float = Field(default=550, gt=0)
    canvas_height: float = Field(default=200, gt=0)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def _one_input(self) -> "CaptureRequest":
        provided = [
            self.image_data is not None,
            self.strokes is not None,
            bool(self.first_name or self.last_name),
        ]
        if sum(provided) != 1:
            raise ValueError("Provide exactly one of imageData, strokes, or a typed name")
        return self

    @field_validator("image_data")
    @classmethod
    def _validate_image_data(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_image_value(v):
            raise ValueError("imageData must be an image data URL")
        return v


class DragStartRequest(DisplayGeometry):
    """Pointer-down on a field; pointer position in display pixels relative to the page."""
    field_id: str
    pointer_x: float
    pointer_y: float


class DragMoveRequest(BaseRequest):
    pointer_x: float
    pointer_y: float


class LoadFromUrlRequest(BaseRequest):
    url: str = Field(..., min_length=1)


class CompleteRequest(BaseRequest):
    record_id: Optional[str] = Field(None, max_length=200)
    file_name: Optional[str] = Field(None, max_length=255)


class UploadRequest(CamelModel):
    """Body sent to the upload endpoint."""
    pdf_base64: str
    file_name: str
    record_id: Optional[str] = None
    thumbnail_base64: Optional[str] = None


# Response Models
class UploadResult(CamelModel):
    success: bool
    file_name: str
    blob_url: Optional[str] = None
    db_inserted: bool = False
    metadata_error: Optional[str] = None
    attempts: int = 0


class DocumentResponse(CamelModel):
    document_id: str
    file_name: str
    source_url: str
    page_count: int
    pages: List[PageInfo]


class ActivationResponse(CamelModel):
    action: str
    field: Optional[SignatureField] = None
    existing_value: Optional[str] = None
    next_field_id: Optional[str] = None


class SessionStateResponse(CamelModel):
    mode: AppMode
    consent_given: bool
    consent_pending: bool
    fields: List[SignatureField]
    has_saved_signature: bool
    has_saved_initial: bool
    highlighted_field_id: Optional[str] = None
    is_processing: bool
    is_loading: bool
    capture_field_id: Optional[str] = None
    signatures_remaining: int
    initials_remaining: int
    all_fields_filled: bool


class FieldListResponse(CamelModel):
    fields: List[SignatureField]


class ModeResponse(CamelModel):
    mode: AppMode
    changed: bool
    consent_required: bool = False


class NextFieldResponse(CamelModel):
    field: Optional[SignatureField] = None
    complete_available: bool


class CompletionResponse(CamelModel):
    completion: CompletionData
    file_name: str
    download_url: str = "/v1/signing/download"
    upload: Optional[UploadResult] = None
