"""
Signing workspace - one document session from load to completion.

Owns the loaded document, the field store, the mode controller, the signing
flow and any drag in progress. Field mutations are synchronous; loading and
export run off the event loop. Loading and completion each block conflicting
input while in flight, and both clear their busy flag in `finally`.
"""
import asyncio
import base64
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from signdesk.config import Settings, get_settings
from signdesk.document import (
    Activation,
    DragSession,
    FieldStore,
    ModeController,
    ModeTransition,
    PageGeometry,
    SigningFlow,
    build_layout,
    export_layout_json,
    parse_layout,
)
from signdesk.models import (
    AppMode,
    CaptureRequest,
    CompletionData,
    FieldType,
    SignatureField,
    UploadRequest,
    UploadResult,
)
from signdesk.notifications import CompletionNotifier
from signdesk.pdf import (
    DocumentLoader,
    LoadedDocument,
    SignedPdfExporter,
    render_strokes,
    render_typed_name,
)
from signdesk.pdf.export import signed_file_name
from signdesk.upload import UploadClient, UploadError
from signdesk.utils.datetime_utils import iso_timestamp, local_today
from signdesk.utils.logging import set_context

logger = logging.getLogger(__name__)


class WorkspaceError(Exception):
    """Operation not possible in the workspace's current state."""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.message = message
        self.code = code


class NoDocumentError(WorkspaceError):
    def __init__(self):
        super().__init__("No document loaded", code="NO_DOCUMENT")


class BusyError(WorkspaceError):
    def __init__(self, message: str):
        super().__init__(message, code="BUSY")


@dataclass
class CompletionOutcome:
    """Result of a completed signing session."""
    completion: CompletionData
    pdf_bytes: bytes
    file_name: str
    upload: Optional[UploadResult] = None


def field_state_key(fields: Sequence[SignatureField]) -> str:
    """Fingerprint of everything the export depends on."""
    payload = json.dumps([f.model_dump(mode="json") for f in fields], sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class SigningWorkspace:
    """State and operations of a single signing session."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        loader: Optional[DocumentLoader] = None,
        exporter: Optional[SignedPdfExporter] = None,
        upload_client: Optional[UploadClient] = None,
        notifier: Optional[CompletionNotifier] = None,
        clock: Callable[[], float] = time.monotonic,
        today: Callable = local_today,
    ):
        self.settings = settings or get_settings()
        self.loader = loader or DocumentLoader(self.settings)
        self.exporter = exporter or SignedPdfExporter(render_scale=self.settings.export_render_scale)
        self.upload_client = upload_client or UploadClient(self.settings)
        self.notifier = notifier or CompletionNotifier()

        self.store = FieldStore(today=today)
        self.modes = ModeController(self.store)
        self.flow = SigningFlow(
            self.store,
            self.modes,
            clock=clock,
            indicator_seconds=self.settings.auto_apply_indicator_ms / 1000,
            highlight_seconds=self.settings.highlight_ms / 1000,
        )

        self.document: Optional[LoadedDocument] = None
        self.drag: Optional[DragSession] = None
        self.is_loading = False
        self.is_completing = False
        self.last_export: Optional[bytes] = None
        self.last_export_name: Optional[str] = None
        self.last_export_key: Optional[str] = None

    # -- guards -------------------------------------------------------------------

    def _ensure_idle(self) -> None:
        if self.is_loading:
            raise BusyError("A document is still loading")
        if self.is_completing:
            raise BusyError("Completion is in progress")

    def require_document(self) -> LoadedDocument:
        if self.document is None:
            raise NoDocumentError()
        return self.document

    def _require_mode(self, mode: AppMode) -> None:
        if self.modes.mode != mode:
            raise WorkspaceError(f"Only available in {mode.value} mode", code="WRONG_MODE")

    def geometry(
        self,
        page: int,
        rendered_width: Optional[float] = None,
        rendered_height: Optional[float] = None,
    ) -> PageGeometry:
        """Display <-> native mapping for one page at its current on-screen size."""
        document = self.require_document()
        self.store.check_page(page)
        width, height = document.source.page_size(page)
        return PageGeometry.create(width, height, rendered_width, rendered_height)

    # -- document loading ------------------------------------------------------------

    async def load_document(
        self,
        data: bytes,
        content_type: Optional[str],
        file_name: str,
        source_url: Optional[str] = None,
    ) -> LoadedDocument:
        """
        Decode and attach a PDF.

        On failure the current document (if any) stays attached.
        """
        self._ensure_idle()
        self.is_loading = True
        try:
            document = await self.loader.load(data, content_type, file_name, source_url)
        finally:
            self.is_loading = False
        self._attach(document)
        return document

    async def load_document_url(self, url: str) -> LoadedDocument:
        self._ensure_idle()
        self.is_loading = True
        try:
            document = await self.loader.load_url(url)
        finally:
            self.is_loading = False
        self._attach(document)
        return document

    async def load_page_images(
        self,
        images: Sequence[Tuple[bytes, Optional[str]]],
        file_name: str,
        sizes: Optional[Sequence[Optional[Tuple[float, float]]]] = None,
    ) -> LoadedDocument:
        """Attach a document made of pre-rendered page images."""
        self._ensure_idle()
        self.is_loading = True
        try:
            document = await asyncio.to_thread(
                self.loader.load_images, images, file_name, None, sizes
            )
        finally:
            self.is_loading = False
        self._attach(document)
        return document

    def _attach(self, document: LoadedDocument) -> None:
        previous = self.document
        self.document = document
        if previous is not None:
            previous.close()

        self.store.set_pages(document.page_sizes())
        # Placed fields survive a reload, as long as their page still exists
        kept = [f for f in self.store.fields if f.page <= document.page_count]
        if len(kept) != len(self.store):
            logger.info(f"Dropped {len(self.store) - len(kept)} field(s) beyond page {document.page_count}")
            self.store.replace_all(kept)
        moved = self.store.clamp_to_pages()
        if moved:
            logger.info(f"Moved {moved} field(s) back inside the new page bounds")

        self.modes.reset()
        self.flow.reset()
        self.drag = None
        self._clear_export()
        set_context(document_id=document.document_id)
        logger.info(f"Document attached: {document.file_name}, {document.page_count} page(s)")

    def close(self) -> None:
        if self.document is not None:
            self.document.close()
            self.document = None

    # -- layout ------------------------------------------------------------------------

    def export_layout(self) -> str:
        document = self.require_document()
        return export_layout_json(build_layout(document.source_url, self.store.fields))

    def import_layout(self, data) -> List[SignatureField]:
        """
        Replace all fields from a layout file. Fill state is always reset.

        Raises:
            LayoutError: Malformed layout; fields are left untouched
            FieldError: A field sits on a page the document does not have
        """
        self._ensure_idle()
        self._require_mode(AppMode.EDITOR)
        layout = parse_layout(data)
        self.store.replace_all(layout.fields)
        self.drag = None
        logger.info(f"Layout imported: {len(layout.fields)} field(s)")
        return self.store.fields

    # -- editor ------------------------------------------------------------------------

    def add_field(
        self,
        x: float,
        y: float,
        page: int,
        field_type: FieldType,
        rendered_width: Optional[float] = None,
        rendered_height: Optional[float] = None,
    ) -> SignatureField:
        """Place a new field at a click position given in display pixels."""
        self._ensure_idle()
        self._require_mode(AppMode.EDITOR)
        geometry = self.geometry(page, rendered_width, rendered_height)
        native_x, native_y = geometry.to_native(x, y)
        return self.store.add_field(native_x, native_y, page, field_type)

    def move_field(
        self,
        field_id: str,
        x: float,
        y: float,
        page: Optional[int] = None,
        rendered_width: Optional[float] = None,
        rendered_height: Optional[float] = None,
    ) -> Optional[SignatureField]:
        self._ensure_idle()
        self._require_mode(AppMode.EDITOR)
        field = self.store.get(field_id)
        if field is None:
            return None
        geometry = self.geometry(page or field.page, rendered_width, rendered_height)
        native_x, native_y = geometry.to_native(x, y)
        return self.store.move_field(field_id, native_x, native_y, page=page)

    def delete_field(self, field_id: str) -> Optional[SignatureField]:
        self._ensure_idle()
        self._require_mode(AppMode.EDITOR)
        if self.drag is not None and self.drag.field_id == field_id:
            self.drag = None
        return self.store.delete_field(field_id)

    def change_field_type(self, field_id: str, field_type: FieldType) -> Optional[SignatureField]:
        self._ensure_idle()
        self._require_mode(AppMode.EDITOR)
        return self.store.change_field_type(field_id, field_type)

    # -- drag --------------------------------------------------------------------------

    def begin_drag(
        self,
        field_id: str,
        pointer_x: float,
        pointer_y: float,
        rendered_width: Optional[float] = None,
        rendered_height: Optional[float] = None,
    ) -> Optional[SignatureField]:
        """Pointer-down on a field. Returns None if the field is gone."""
        self._ensure_idle()
        self._require_mode(AppMode.EDITOR)
        field = self.store.get(field_id)
        if field is None:
            return None
        geometry = self.geometry(field.page, rendered_width, rendered_height)
        self.drag = DragSession(self.store, field_id, geometry, pointer_x, pointer_y)
        return field

    def drag_to(self, pointer_x: float, pointer_y: float) -> Optional[SignatureField]:
        if self.drag is None:
            raise WorkspaceError("No drag in progress", code="NO_DRAG")
        return self.drag.move(pointer_x, pointer_y)

    def end_drag(self) -> Optional[SignatureField]:
        if self.drag is None:
            return None
        drag, self.drag = self.drag, None
        return drag.end()

    # -- mode & consent ------------------------------------------------------------------

    def request_mode(self, mode: AppMode) -> ModeTransition:
        self._ensure_idle()
        self.require_document()
        self.drag = None
        transition = self.modes.request_mode(mode)
        if transition.changed:
            self.flow.reset()
        return transition

    def grant_consent(self) -> ModeTransition:
        self._ensure_idle()
        self.require_document()
        transition = self.modes.grant_consent()
        self.flow.reset()
        return transition

    def decline_consent(self) -> ModeTransition:
        return self.modes.decline_consent()

    # -- signing -------------------------------------------------------------------------

    def activate(self, field_id: str) -> Activation:
        self._ensure_idle()
        self._require_mode(AppMode.SIGNING)
        set_context(field_id=field_id)
        return self.flow.activate(field_id)

    def capture(self, request: CaptureRequest) -> List[SignatureField]:
        """
        Apply the capture dialog's result to the pending field.

        Raises:
            CaptureError: No capture open
            CaptureRenderError: Empty strokes or name
        """
        self._ensure_idle()
        prompt = self.flow.pending
        if request.image_data is not None:
            image_data = request.image_data
        elif request.strokes is not None:
            image_data = render_strokes(
                [[(p.x, p.y) for p in stroke] for stroke in request.strokes],
                request.canvas_width,
                request.canvas_height,
            )
        else:
            field_type = prompt.field_type if prompt else FieldType.SIGNATURE
            image_data = render_typed_name(request.first_name or "", request.last_name or "", field_type)
        return self.flow.apply_capture(image_data)

    def cancel_capture(self) -> None:
        self.flow.cancel_capture()

    def scroll_to_next(self) -> Optional[SignatureField]:
        self._require_mode(AppMode.SIGNING)
        return self.flow.scroll_to_next()

    # -- completion ------------------------------------------------------------------------

    async def complete(
        self,
        record_id: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> CompletionOutcome:
        """
        Export the signed PDF, upload it when an endpoint is configured, and
        notify listeners.

        At most one completion runs at a time; a second call raises BusyError.
        The processing flag is cleared whether this succeeds or fails.

        Raises:
            BusyError: Already completing or loading
            WorkspaceError: Not in signing mode, or a field is still unfilled
            RenderError: Export failed
            UploadError: Upload failed; the session stays in signing mode
        """
        if self.is_completing:
            raise BusyError("Completion is already in progress")
        if self.is_loading:
            raise BusyError("A document is still loading")
        document = self.require_document()
        self._require_mode(AppMode.SIGNING)
        if not self.store.all_filled:
            raise WorkspaceError("Fill every field before completing", code="INCOMPLETE")

        self.is_completing = True
        try:
            fields = self.store.fields
            pdf_bytes = await asyncio.to_thread(self.exporter.export, document.source, fields)
            name = file_name or signed_file_name()
            self._remember_export(pdf_bytes, name, fields)

            upload_result = None
            if self.upload_client.is_configured():
                upload_result = await self._upload(document, pdf_bytes, name, record_id)

            completion = CompletionData(
                status="completed",
                document_layout=build_layout(document.source_url, fields),
                timestamp=iso_timestamp(),
            )
            self.notifier.notify(completion)
            logger.info(f"Signing completed: {name}, {len(fields)} field(s)")
            return CompletionOutcome(
                completion=completion,
                pdf_bytes=pdf_bytes,
                file_name=name,
                upload=upload_result,
            )
        finally:
            self.is_completing = False

    async def _upload(
        self,
        document: LoadedDocument,
        pdf_bytes: bytes,
        file_name: str,
        record_id: Optional[str],
    ) -> UploadResult:
        thumbnail = None
        try:
            thumbnail = await asyncio.to_thread(
                self.exporter.thumbnail_base64, document.source, self.settings.thumbnail_scale
            )
        except Exception as e:
            # Thumbnail is optional for the upload endpoint
            logger.warning(f"Thumbnail generation failed: {e}")

        request = UploadRequest(
            pdf_base64=base64.b64encode(pdf_bytes).decode("ascii"),
            file_name=file_name,
            record_id=record_id,
            thumbnail_base64=thumbnail,
        )
        try:
            return await self.upload_client.upload(request)
        except UploadError:
            logger.error(f"Upload of {file_name} failed, signing can be completed again")
            raise

    def _remember_export(self, pdf_bytes: bytes, file_name: str, fields: List[SignatureField]) -> None:
        self.last_export = pdf_bytes
        self.last_export_name = file_name
        self.last_export_key = field_state_key(fields)

    def _clear_export(self) -> None:
        self.last_export = None
        self.last_export_name = None
        self.last_export_key = None

    async def download(self) -> Tuple[bytes, str]:
        """
        Signed PDF for download.

        Reuses the last export while the fields are unchanged since it was
        made, so download and upload carry the same bytes. Any edit after
        completion produces a fresh export.
        """
        document = self.require_document()
        fields = self.store.fields
        if self.last_export is not None and self.last_export_key == field_state_key(fields):
            return self.last_export, self.last_export_name

        pdf_bytes = await asyncio.to_thread(self.exporter.export, document.source, fields)
        name = self.last_export_name or signed_file_name()
        self._remember_export(pdf_bytes, name, fields)
        return pdf_bytes, name

    # -- state snapshot -------------------------------------------------------------------

    def snapshot(self) -> dict:
        cache = self.modes.cache
        pending = self.flow.pending
        return {
            "mode": self.modes.mode,
            "consent_given": self.modes.consent_given,
            "consent_pending": self.modes.consent_pending,
            "fields": self.store.fields,
            "has_saved_signature": cache.has(FieldType.SIGNATURE),
            "has_saved_initial": cache.has(FieldType.INITIAL),
            "highlighted_field_id": self.flow.highlighted_field_id,
            "is_processing": self.flow.is_processing or self.is_completing,
            "is_loading": self.is_loading,
            "capture_field_id": pending.field_id if pending else None,
            "signatures_remaining": self.store.remaining(FieldType.SIGNATURE),
            "initials_remaining": self.store.remaining(FieldType.INITIAL),
            "all_fields_filled": self.store.all_filled,
        }


# Singleton instance
_workspace: Optional[SigningWorkspace] = None


def get_workspace() -> SigningWorkspace:
    """Get the workspace singleton."""
    global _workspace
    if _workspace is None:
        _workspace = SigningWorkspace()
    return _workspace


def reset_workspace() -> None:
    """Drop the current workspace (tests, shutdown)."""
    global _workspace
    if _workspace is not None:
        _workspace.close()
    _workspace = None
