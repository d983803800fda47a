"""
Soporte API — Uploaded Image Server
=====================================

What:  GET /uploads/{path}, the public URL of every stored image.
How:   local/hybrid → stream the file from UPLOADS_DIR
       remote       → 307 redirect to the object's public Supabase URL

Security:
    Paths are resolved under the uploads root; anything that escapes it
    (`../`, absolute paths) is rejected with 400 before touching the disk.

Caching:
    Image files never change once written (names embed a timestamp), so they
    are served with `Cache-Control: public, max-age=86400`.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, RedirectResponse, Response

from soporte.exceptions import NotFoundError
from soporte.schemas.computador import ErrorResponse
from soporte.services.attachment_resolver import AttachmentResolver
from soporte.services.image_store import content_type_for

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Uploads"])

# Images are embedded by the frontend from another origin
IMAGE_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Cache-Control": "public, max-age=86400",
}


@router.get(
    "/uploads/{file_path:path}",
    responses={
        200: {"description": "Image file"},
        307: {"description": "Redirect to the image in Supabase Storage"},
        400: {"description": "Invalid path", "model": ErrorResponse},
        404: {"description": "Image not found", "model": ErrorResponse},
    },
    summary="Serve a stored image",
)
async def serve_upload(file_path: str, request: Request) -> Response:
    """
    Raises:
        ValidationError: path escapes the uploads root (→ 400)
        NotFoundError: no such file, or no public URL in remote mode (→ 404)
    """
    attachments: AttachmentResolver = request.app.state.attachments

    if attachments.local_store is None:
        public_url = attachments.remote_store.public_url(file_path) if attachments.remote_store else None
        if not public_url:
            raise NotFoundError(resource="imagen", resource_id=file_path)
        return RedirectResponse(public_url, status_code=307)

    full_path = attachments.local_store.resolve(file_path)
    if not full_path.is_file():
        logger.info("Requested image not found: %s", file_path)
        raise NotFoundError(resource="imagen", resource_id=file_path)

    return FileResponse(
        full_path,
        media_type=content_type_for(full_path.name),
        headers=IMAGE_HEADERS,
    )
