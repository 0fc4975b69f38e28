"""
Document API Router - load the document to sign and its field layout.
Paths: /v1/document, /v1/layout
"""
import asyncio
import json
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile

from signdesk.config import Settings, get_settings
from signdesk.document.layout import layout_file_name
from signdesk.exceptions import LIBRARY_ERRORS, ValidationException, translate_error
from signdesk.models import DocumentResponse, FieldListResponse, LoadFromUrlRequest, PageInfo
from signdesk.pdf.loader import LoadedDocument
from signdesk.services.workspace import SigningWorkspace, get_workspace
from signdesk.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["documents"])


def document_response(document: LoadedDocument) -> DocumentResponse:
    return DocumentResponse(
        document_id=document.document_id,
        file_name=document.file_name,
        source_url=document.source_url,
        page_count=document.page_count,
        pages=[
            PageInfo(page=page, width=width, height=height)
            for page, (width, height) in sorted(document.page_sizes().items())
        ],
    )


@router.post(
    "/v1/document",
    response_model=DocumentResponse,
    status_code=201,
)
async def upload_document(
    file: UploadFile = File(...),
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """Load a local PDF file. Anything that is not a PDF is rejected with 400."""
    data = await file.read()
    logger.info(f"Document upload: {file.filename} ({len(data)} bytes, {file.content_type})")
    try:
        document = await workspace.load_document(
            data,
            file.content_type,
            file.filename or "document.pdf",
        )
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return document_response(document)


@router.post(
    "/v1/document/from-url",
    response_model=DocumentResponse,
    status_code=201,
)
async def load_document_from_url(
    request_body: LoadFromUrlRequest,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """Fetch a PDF over HTTP(S) and load it."""
    try:
        document = await workspace.load_document_url(request_body.url)
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return document_response(document)


@router.post(
    "/v1/document/pages",
    response_model=DocumentResponse,
    status_code=201,
)
async def upload_page_images(
    files: List[UploadFile] = File(...),
    file_name: str = Form("document.pdf", alias="fileName"),
    sizes: Optional[str] = Form(None, description='JSON list of [width, height] per page, in points'),
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """Load a document made of pre-rendered page images, one file per page."""
    page_sizes = None
    if sizes:
        try:
            parsed = json.loads(sizes)
        except ValueError as e:
            raise ValidationException(f"Invalid page sizes: {e}")
        if not isinstance(parsed, list):
            raise ValidationException("Invalid page sizes: expected a JSON list")
        # Entries are checked by the loader
        page_sizes = [tuple(size) if isinstance(size, list) else size for size in parsed]

    images = [(await f.read(), f.content_type) for f in files]
    try:
        document = await workspace.load_page_images(images, file_name, page_sizes)
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return document_response(document)


@router.get(
    "/v1/document",
    response_model=DocumentResponse,
)
async def get_document(workspace: SigningWorkspace = Depends(get_workspace)):
    try:
        return document_response(workspace.require_document())
    except LIBRARY_ERRORS as e:
        raise translate_error(e)


@router.get("/v1/document/pages/{page}/image")
async def get_page_image(
    page: int,
    scale: Optional[float] = Query(None, gt=0, le=4),
    workspace: SigningWorkspace = Depends(get_workspace),
    settings: Settings = Depends(get_settings),
):
    """One page rasterized for display, as PNG."""
    try:
        document = workspace.require_document()
        if page < 1 or page > document.page_count:
            raise ValidationException(f"Page {page} does not exist. Document has {document.page_count} pages.")
        raster = await asyncio.to_thread(
            document.source.rasterize, page, scale or settings.display_render_scale
        )
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return Response(
        content=raster.png,
        media_type="image/png",
        headers={
            "X-Rendered-Width": str(raster.width),
            "X-Rendered-Height": str(raster.height),
        },
    )


@router.get("/v1/layout")
async def export_layout(workspace: SigningWorkspace = Depends(get_workspace)):
    """Current layout as a downloadable JSON file."""
    try:
        content = workspace.export_layout()
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{layout_file_name()}"'},
    )


@router.post(
    "/v1/layout",
    response_model=FieldListResponse,
)
async def import_layout(
    request: Request,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """
    Replace all fields from a layout JSON body.
    Fill state is always reset; a malformed layout changes nothing (400).
    """
    body = await request.body()
    try:
        fields = workspace.import_layout(body)
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return FieldListResponse(fields=fields)
