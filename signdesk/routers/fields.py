"""
Editor API Router - place, move, retype and delete fields.
Paths: /v1/fields, /v1/drag

Positions come in display pixels together with the page's rendered size;
omit the rendered size to send native PDF points.
"""
from fastapi import APIRouter, Depends, Response

from signdesk.exceptions import LIBRARY_ERRORS, NotFoundError, translate_error
from signdesk.models import (
    AddFieldRequest,
    ChangeFieldTypeRequest,
    DragMoveRequest,
    DragStartRequest,
    MoveFieldRequest,
    SignatureField,
)
from signdesk.services.workspace import SigningWorkspace, get_workspace
from signdesk.utils.logging import get_logger, set_context

logger = get_logger(__name__)

router = APIRouter(tags=["editor"])


@router.post(
    "/v1/fields",
    response_model=SignatureField,
    status_code=201,
)
async def add_field(
    request_body: AddFieldRequest,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """Place a new field where the user clicked."""
    try:
        return workspace.add_field(
            request_body.x,
            request_body.y,
            request_body.page,
            request_body.type,
            request_body.rendered_width,
            request_body.rendered_height,
        )
    except LIBRARY_ERRORS as e:
        raise translate_error(e)


@router.patch(
    "/v1/fields/{field_id}/position",
    response_model=SignatureField,
)
async def move_field(
    field_id: str,
    request_body: MoveFieldRequest,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    set_context(field_id=field_id)
    try:
        field = workspace.move_field(
            field_id,
            request_body.x,
            request_body.y,
            request_body.page,
            request_body.rendered_width,
            request_body.rendered_height,
        )
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    if field is None:
        raise NotFoundError("Field", field_id)
    return field


@router.patch(
    "/v1/fields/{field_id}/type",
    response_model=SignatureField,
)
async def change_field_type(
    field_id: str,
    request_body: ChangeFieldTypeRequest,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """Retype a field. Becoming a date fills it with today's date."""
    set_context(field_id=field_id)
    try:
        field = workspace.change_field_type(field_id, request_body.type)
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    if field is None:
        raise NotFoundError("Field", field_id)
    return field


@router.delete("/v1/fields/{field_id}", status_code=204)
async def delete_field(
    field_id: str,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """Delete a field. The UI asks for confirmation before calling this."""
    set_context(field_id=field_id)
    try:
        workspace.delete_field(field_id)
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return Response(status_code=204)


@router.post(
    "/v1/drag",
    response_model=SignatureField,
)
async def start_drag(
    request_body: DragStartRequest,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """Pointer-down on a field."""
    set_context(field_id=request_body.field_id)
    try:
        field = workspace.begin_drag(
            request_body.field_id,
            request_body.pointer_x,
            request_body.pointer_y,
            request_body.rendered_width,
            request_body.rendered_height,
        )
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    if field is None:
        raise NotFoundError("Field", request_body.field_id)
    return field


@router.patch(
    "/v1/drag",
    response_model=SignatureField,
)
async def drag_move(
    request_body: DragMoveRequest,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """Pointer-move while dragging. Each update is clamped to the page."""
    try:
        field = workspace.drag_to(request_body.pointer_x, request_body.pointer_y)
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    if field is None:
        raise NotFoundError("Field", "dragged")
    return field


@router.delete("/v1/drag", status_code=204)
async def end_drag(workspace: SigningWorkspace = Depends(get_workspace)):
    """Pointer-up or cancel."""
    workspace.end_drag()
    return Response(status_code=204)
