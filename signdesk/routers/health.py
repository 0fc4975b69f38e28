"""
Health check endpoints for diagnosing the rendering stack.
"""
import asyncio
import time

import fitz  # PyMuPDF
import PIL
from fastapi import APIRouter, Depends

from signdesk.config import Settings, get_settings
from signdesk.pdf.export import get_pdf_exporter
from signdesk.pdf.pages import PdfPageSource

router = APIRouter(
    prefix="/health",
    tags=["health"],
)


@router.get("/renderer")
async def health_check_renderer(settings: Settings = Depends(get_settings)):
    """
    Report the PDF engine and imaging library in use.
    Useful for diagnosing render and export issues.
    """
    return {
        "status": "healthy",
        "render_backend": settings.render_backend,
        "pymupdf_version": fitz.VersionBind,
        "pillow_version": PIL.__version__,
        "export_render_scale": settings.export_render_scale,
    }


def _run_test_export() -> dict:
    steps = []
    doc = fitz.open()
    page = doc.new_page(width=612, height=792)
    page.insert_text((72, 72), "Renderer self-test", fontsize=12)
    pdf_bytes = doc.tobytes()
    doc.close()
    steps.append(f"Created test PDF: {len(pdf_bytes)} bytes")

    source = PdfPageSource(pdf_bytes)
    try:
        output = get_pdf_exporter().export(source, [])
    finally:
        source.close()
    steps.append(f"Exported: {len(output)} bytes")

    with fitz.open(stream=output, filetype="pdf") as out:
        steps.append(f"Output pages: {out.page_count}")
    return {"steps": steps}


@router.get("/renderer/test-export")
async def test_renderer_export():
    """
    Render a one-page test document through the export pipeline.
    This endpoint helps diagnose export issues.
    """
    start_time = time.time()
    test_result = {
        "success": False,
        "duration_seconds": 0,
        "steps": [],
        "error": None,
    }

    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(_run_test_export),
            timeout=30,
        )
        test_result["steps"] = result["steps"]
        test_result["success"] = True
    except asyncio.TimeoutError:
        test_result["error"] = "Test export timed out after 30 seconds"
        test_result["steps"].append("TIMEOUT")
    except Exception as e:
        test_result["error"] = str(e)
        test_result["steps"].append(f"ERROR: {e}")
    finally:
        test_result["duration_seconds"] = round(time.time() - start_time, 2)

    return test_result
