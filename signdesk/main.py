"""
SignDesk - local signing service.
FastAPI application behind the browser UI: place fields on a PDF, sign them,
and export the flattened signed document.
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from signdesk.config import get_cors_origins, get_settings
from signdesk.exceptions import (
    AppException,
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from signdesk.services.workspace import reset_workspace
from signdesk.utils.logging import RequestIdMiddleware, get_logger, setup_logging

logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    setup_logging(
        environment=settings.environment,
        level=logging.DEBUG if settings.debug else logging.INFO,
    )
    logger.info(
        f"Starting SignDesk v{VERSION} ({settings.environment}), "
        f"render backend={settings.render_backend}, "
        f"upload={'configured' if settings.upload_configured else 'disabled'}"
    )
    yield
    reset_workspace()
    logger.info("Shutting down SignDesk")


app = FastAPI(
    title="SignDesk",
    description="""Local service behind the document signing UI.

## Modes

- **Editor**: load a PDF, place signature / initial / date fields, save or load a layout.
- **Signing**: after consent, fill every field with a drawn or typed signature,
  then complete to export (and optionally upload) the signed PDF.

Positions are sent in display pixels together with the page's rendered size;
fields are stored in native PDF points.
""",
    version=VERSION,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "documents", "description": "Document and layout loading"},
        {"name": "editor", "description": "Field placement (editor mode)"},
        {"name": "signing", "description": "Consent, signing and completion"},
        {"name": "health", "description": "Health check endpoints"},
    ],
)


from signdesk.routers import documents, fields, health, signing

# Middleware
app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Rendered-Width", "X-Rendered-Height"],
)

# Exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(ValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(health.router)
app.include_router(documents.router)
app.include_router(fields.router)
app.include_router(signing.router)


# Health check
@app.get("/health")
async def health_check():
    """Liveness check."""
    return {"status": "healthy", "version": VERSION}


def run() -> None:
    """Console entry point: serve on the configured (loopback) address."""
    settings = get_settings()
    uvicorn.run(
        "signdesk.main:app",
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    run()
