"""
End-to-end tests for the HTTP API.
"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from signdesk.main import app
from signdesk.models import UploadResult
from signdesk.pdf.export import SignedPdfExporter
from signdesk.services.workspace import SigningWorkspace, get_workspace
from signdesk.upload import UploadError

from conftest import FIXED_TODAY, FakeClock, make_png


@pytest.fixture
def upload_client():
    client = MagicMock()
    client.is_configured.return_value = False
    client.upload = AsyncMock()
    return client


@pytest.fixture
def workspace(test_settings, upload_client):
    ws = SigningWorkspace(
        settings=test_settings,
        exporter=SignedPdfExporter(render_scale=0.5),
        upload_client=upload_client,
        clock=FakeClock(),
        today=lambda: FIXED_TODAY,
    )
    yield ws
    ws.close()


@pytest.fixture
def client(workspace):
    app.dependency_overrides[get_workspace] = lambda: workspace
    yield TestClient(app)
    app.dependency_overrides.clear()


def upload_pdf(client, pdf_bytes):
    return client.post(
        "/v1/document",
        files={"file": ("contract.pdf", pdf_bytes, "application/pdf")},
    )


def enter_signing(client):
    assert client.post("/v1/mode", json={"mode": "signing"}).json()["consentRequired"] is True
    response = client.post("/v1/consent")
    assert response.json()["mode"] == "signing"


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_renderer_health(self, client):
        data = client.get("/health/renderer").json()
        assert data["render_backend"] in ("pdf", "images")
        assert data["pymupdf_version"]

    def test_renderer_test_export(self, client):
        data = client.get("/health/renderer/test-export").json()
        assert data["success"] is True, data["error"]
        assert "Output pages: 1" in data["steps"]


class TestDocumentEndpoints:

    def test_upload_pdf(self, client, sample_pdf_bytes):
        response = upload_pdf(client, sample_pdf_bytes)
        assert response.status_code == 201
        data = response.json()
        assert data["pageCount"] == 2
        assert data["pages"][0] == {"page": 1, "width": 612.0, "height": 792.0}

    def test_upload_non_pdf_rejected(self, client):
        response = client.post(
            "/v1/document",
            files={"file": ("photo.png", make_png(), "image/png")},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] is True
        assert body["code"] == "VALIDATION_ERROR"

    def test_corrupt_pdf(self, client):
        response = client.post(
            "/v1/document",
            files={"file": ("broken.pdf", b"not a pdf at all", "application/pdf")},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "DOCUMENT_ERROR"

    def test_no_document(self, client):
        assert client.get("/v1/document").status_code == 404

    def test_page_images(self, client):
        response = client.post(
            "/v1/document/pages",
            files=[
                ("files", ("p1.png", make_png(100, 130), "image/png")),
                ("files", ("p2.png", make_png(100, 130), "image/png")),
            ],
            data={"fileName": "scan.pdf", "sizes": json.dumps([[612, 792], None])},
        )
        assert response.status_code == 201
        assert response.json()["pages"][1]["width"] == 100.0

    def test_page_images_malformed_size(self, client):
        response = client.post(
            "/v1/document/pages",
            files=[("files", ("p1.png", make_png(100, 130), "image/png"))],
            data={"fileName": "scan.pdf", "sizes": json.dumps([[612]])},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_page_image(self, client, sample_pdf_bytes):
        upload_pdf(client, sample_pdf_bytes)
        response = client.get("/v1/document/pages/1/image", params={"scale": 0.5})
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["x-rendered-width"] == "306"

    def test_layout_round_trip(self, client, sample_pdf_bytes):
        upload_pdf(client, sample_pdf_bytes)
        client.post("/v1/fields", json={"x": 10, "y": 20, "page": 2, "type": "initial"})

        exported = client.get("/v1/layout")
        assert exported.status_code == 200
        assert "attachment" in exported.headers["content-disposition"]

        imported = client.post("/v1/layout", content=exported.content)
        assert imported.status_code == 200
        field = imported.json()["fields"][0]
        assert (field["page"], field["x"], field["y"]) == (2, 10, 20)
        assert field["isFilled"] is False

    def test_malformed_layout(self, client, sample_pdf_bytes):
        upload_pdf(client, sample_pdf_bytes)
        response = client.post("/v1/layout", content=b'{"fields": 3}')
        assert response.status_code == 400


class TestEditorEndpoints:

    def test_add_move_retype_delete(self, client, sample_pdf_bytes):
        upload_pdf(client, sample_pdf_bytes)

        created = client.post("/v1/fields", json={
            "x": 150, "y": 300, "page": 1, "type": "signature",
            "renderedWidth": 918, "renderedHeight": 1188,
        })
        assert created.status_code == 201
        field = created.json()
        assert field["x"] == pytest.approx(100)
        assert field["isFilled"] is False

        moved = client.patch(f"/v1/fields/{field['id']}/position", json={"x": 9999, "y": -50})
        assert moved.json()["x"] == pytest.approx(432)
        assert moved.json()["y"] == 0

        retyped = client.patch(f"/v1/fields/{field['id']}/type", json={"type": "date"})
        assert retyped.json()["value"] == "03/07/2024"
        assert retyped.json()["isFilled"] is True

        assert client.delete(f"/v1/fields/{field['id']}").status_code == 204
        assert client.get("/v1/signing/status").json()["fields"] == []

    def test_unknown_field(self, client, sample_pdf_bytes):
        upload_pdf(client, sample_pdf_bytes)
        response = client.patch("/v1/fields/nope/type", json={"type": "date"})
        assert response.status_code == 404

    def test_page_out_of_range(self, client, sample_pdf_bytes):
        upload_pdf(client, sample_pdf_bytes)
        response = client.post("/v1/fields", json={"x": 1, "y": 1, "page": 5, "type": "date"})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["details"]["code"] == "PAGE_OUT_OF_RANGE"

    def test_drag(self, client, sample_pdf_bytes):
        upload_pdf(client, sample_pdf_bytes)
        field = client.post("/v1/fields", json={"x": 100, "y": 100, "page": 1, "type": "initial"}).json()

        assert client.post("/v1/drag", json={"fieldId": field["id"], "pointerX": 105, "pointerY": 105}).status_code == 200
        moved = client.patch("/v1/drag", json={"pointerX": 305, "pointerY": 205}).json()
        assert (moved["x"], moved["y"]) == (300, 200)
        assert client.delete("/v1/drag").status_code == 204
        assert client.patch("/v1/drag", json={"pointerX": 0, "pointerY": 0}).status_code == 409


class TestSigningEndpoints:

    def test_full_signing_flow(self, client, sample_pdf_bytes, signature_data_url):
        upload_pdf(client, sample_pdf_bytes)
        first = client.post("/v1/fields", json={"x": 50, "y": 50, "page": 1, "type": "signature"}).json()
        second = client.post("/v1/fields", json={"x": 50, "y": 50, "page": 2, "type": "signature"}).json()
        client.post("/v1/fields", json={"x": 50, "y": 400, "page": 1, "type": "date"})

        # Editing is refused once signing
        enter_signing(client)
        assert client.post("/v1/fields", json={"x": 1, "y": 1, "page": 1, "type": "date"}).status_code == 409

        activation = client.post(f"/v1/signing/fields/{first['id']}/activate").json()
        assert activation["action"] == "prompt"

        applied = client.post("/v1/signing/capture", json={"imageData": signature_data_url})
        assert applied.status_code == 200
        assert applied.json()["fields"][0]["id"] == first["id"]

        # Saved signature is applied without prompting
        auto = client.post(f"/v1/signing/fields/{second['id']}/activate").json()
        assert auto["action"] == "auto_applied"

        status = client.get("/v1/signing/status").json()
        assert status["allFieldsFilled"] is True
        assert status["hasSavedSignature"] is True
        assert status["signaturesRemaining"] == 0

        nxt = client.post("/v1/signing/next").json()
        assert nxt["field"] is None
        assert nxt["completeAvailable"] is True

        completed = client.post("/v1/signing/complete", json={"fileName": "signed.pdf"})
        assert completed.status_code == 200
        body = completed.json()
        assert body["completion"]["status"] == "completed"
        assert body["fileName"] == "signed.pdf"

        download = client.get("/v1/signing/download")
        assert download.status_code == 200
        assert download.headers["content-type"] == "application/pdf"
        assert download.content.startswith(b"%PDF")

    def test_capture_without_prompt(self, client, sample_pdf_bytes, signature_data_url):
        upload_pdf(client, sample_pdf_bytes)
        enter_signing(client)
        response = client.post("/v1/signing/capture", json={"imageData": signature_data_url})
        assert response.status_code == 409

    def test_capture_needs_exactly_one_input(self, client, sample_pdf_bytes):
        upload_pdf(client, sample_pdf_bytes)
        response = client.post("/v1/signing/capture", json={})
        assert response.status_code == 422

    def test_decline_consent(self, client, sample_pdf_bytes):
        upload_pdf(client, sample_pdf_bytes)
        client.post("/v1/mode", json={"mode": "signing"})
        response = client.delete("/v1/consent")
        assert response.json()["mode"] == "editor"
        assert client.get("/v1/signing/status").json()["consentPending"] is False

    def test_upload_failure_is_502(self, client, upload_client, sample_pdf_bytes, signature_data_url):
        upload_pdf(client, sample_pdf_bytes)
        field = client.post("/v1/fields", json={"x": 50, "y": 50, "page": 1, "type": "signature"}).json()
        enter_signing(client)
        client.post(f"/v1/signing/fields/{field['id']}/activate")
        client.post("/v1/signing/capture", json={"imageData": signature_data_url})

        upload_client.is_configured.return_value = True
        upload_client.upload.side_effect = UploadError("endpoint down", status_code=503, attempts=3)
        response = client.post("/v1/signing/complete")
        assert response.status_code == 502
        assert response.json()["code"] == "UPLOAD_ERROR"
        assert client.get("/v1/signing/status").json()["isProcessing"] is False

        upload_client.upload.side_effect = None
        upload_client.upload.return_value = UploadResult(
            success=True, file_name="x.pdf", blob_url="https://blob.example.com/x.pdf", attempts=1
        )
        response = client.post("/v1/signing/complete")
        assert response.status_code == 200
        assert response.json()["upload"]["blobUrl"] == "https://blob.example.com/x.pdf"

    def test_complete_with_unfilled_field(self, client, sample_pdf_bytes):
        upload_pdf(client, sample_pdf_bytes)
        client.post("/v1/fields", json={"x": 50, "y": 50, "page": 1, "type": "signature"})
        enter_signing(client)

        response = client.post("/v1/signing/complete")
        assert response.status_code == 409
        assert response.json()["code"] == "INCOMPLETE"
        assert client.get("/v1/signing/completion").status_code == 404

    def test_last_completion(self, client, sample_pdf_bytes, signature_data_url):
        upload_pdf(client, sample_pdf_bytes)
        field = client.post("/v1/fields", json={"x": 50, "y": 50, "page": 1, "type": "signature"}).json()
        enter_signing(client)
        assert client.get("/v1/signing/completion").status_code == 404

        client.post(f"/v1/signing/fields/{field['id']}/activate")
        client.post("/v1/signing/capture", json={"imageData": signature_data_url})
        completed = client.post("/v1/signing/complete").json()

        last = client.get("/v1/signing/completion")
        assert last.status_code == 200
        assert last.json() == completed["completion"]
        assert last.json()["status"] == "completed"
