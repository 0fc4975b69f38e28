"""
Signing API Router - mode switching, consent, field activation, capture and completion.
Paths: /v1/mode, /v1/consent, /v1/signing
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Response

from signdesk.exceptions import LIBRARY_ERRORS, NotFoundError, translate_error
from signdesk.models import (
    ActivationResponse,
    CaptureRequest,
    CompleteRequest,
    CompletionData,
    CompletionResponse,
    FieldListResponse,
    ModeRequest,
    ModeResponse,
    NextFieldResponse,
    SessionStateResponse,
)
from signdesk.services.workspace import SigningWorkspace, get_workspace
from signdesk.utils.logging import get_logger, set_context

logger = get_logger(__name__)

router = APIRouter(tags=["signing"])


def mode_response(transition) -> ModeResponse:
    return ModeResponse(
        mode=transition.mode,
        changed=transition.changed,
        consent_required=transition.consent_required,
    )


# ============================================================================
# Mode & consent
# ============================================================================

@router.post(
    "/v1/mode",
    response_model=ModeResponse,
)
async def set_mode(
    request_body: ModeRequest,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """
    Switch between editor and signing.
    Entering signing before consent answers consentRequired=true and keeps the mode.
    """
    try:
        transition = workspace.request_mode(request_body.mode)
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return mode_response(transition)


@router.post(
    "/v1/consent",
    response_model=ModeResponse,
)
async def give_consent(workspace: SigningWorkspace = Depends(get_workspace)):
    """Affirmative consent to sign electronically. Completes the pending switch to signing."""
    try:
        transition = workspace.grant_consent()
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return mode_response(transition)


@router.delete(
    "/v1/consent",
    response_model=ModeResponse,
)
async def decline_consent(workspace: SigningWorkspace = Depends(get_workspace)):
    return mode_response(workspace.decline_consent())


# ============================================================================
# Signing
# ============================================================================

@router.post(
    "/v1/signing/fields/{field_id}/activate",
    response_model=ActivationResponse,
)
async def activate_field(
    field_id: str,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """
    Signer clicked a field.

    - action=auto_applied: the saved signature/initial was applied
    - action=prompt: open the capture dialog (existingValue set when editing)
    - action=none: nothing to do (date field, or field no longer exists)
    """
    set_context(field_id=field_id)
    try:
        activation = workspace.activate(field_id)
    except LIBRARY_ERRORS as e:
        raise translate_error(e)

    return ActivationResponse(
        action=activation.action.value,
        field=activation.field,
        existing_value=activation.prompt.existing_value if activation.prompt else None,
        next_field_id=activation.next_field.id if activation.next_field else None,
    )


@router.post(
    "/v1/signing/capture",
    response_model=FieldListResponse,
)
async def apply_capture(
    request_body: CaptureRequest,
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """Apply the capture dialog result (image, drawn strokes or typed name)."""
    try:
        fields = workspace.capture(request_body)
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return FieldListResponse(fields=fields)


@router.delete("/v1/signing/capture", status_code=204)
async def cancel_capture(workspace: SigningWorkspace = Depends(get_workspace)):
    """Close the capture dialog without changing anything."""
    workspace.cancel_capture()
    return Response(status_code=204)


@router.post(
    "/v1/signing/next",
    response_model=NextFieldResponse,
)
async def next_field(workspace: SigningWorkspace = Depends(get_workspace)):
    """Highlight the next unfilled field in reading order."""
    try:
        field = workspace.scroll_to_next()
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return NextFieldResponse(field=field, complete_available=workspace.flow.complete_available)


@router.get(
    "/v1/signing/status",
    response_model=SessionStateResponse,
)
async def get_status(workspace: SigningWorkspace = Depends(get_workspace)):
    return SessionStateResponse(**workspace.snapshot())


@router.post(
    "/v1/signing/complete",
    response_model=CompletionResponse,
)
async def complete_signing(
    request_body: Optional[CompleteRequest] = Body(None),
    workspace: SigningWorkspace = Depends(get_workspace),
):
    """
    Export the signed PDF, upload it when an upload endpoint is configured,
    and notify the embedding page.

    409 while another completion is running; 502 when the upload fails
    (nothing is lost, completion can be retried).
    """
    request_body = request_body or CompleteRequest()
    try:
        outcome = await workspace.complete(
            record_id=request_body.record_id,
            file_name=request_body.file_name,
        )
    except LIBRARY_ERRORS as e:
        raise translate_error(e)

    return CompletionResponse(
        completion=outcome.completion,
        file_name=outcome.file_name,
        upload=outcome.upload,
    )


@router.get(
    "/v1/signing/completion",
    response_model=CompletionData,
)
async def get_last_completion(workspace: SigningWorkspace = Depends(get_workspace)):
    """The most recent completion event, for a parent page that missed the response."""
    event = workspace.notifier.last_event
    if event is None:
        raise NotFoundError("Completion", "last")
    return event


@router.get("/v1/signing/download")
async def download_signed_pdf(workspace: SigningWorkspace = Depends(get_workspace)):
    """Signed PDF as a file download. Same bytes as the uploaded copy while the fields are unchanged."""
    try:
        data, file_name = await workspace.download()
    except LIBRARY_ERRORS as e:
        raise translate_error(e)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )
