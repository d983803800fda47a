"""
Soporte API — Service Description Route
=========================================

GET / answers with what the service does and where its endpoints live, so a
browser pointed at the API host sees something useful instead of a 404.
"""

from typing import Any, Dict

from fastapi import APIRouter, Request

from soporte import __version__
from soporte.routes.health import STORAGE_DESCRIPTIONS

router = APIRouter(tags=["Info"])

# Also listed by the unknown-route handler in main.py
AVAILABLE_ENDPOINTS = [
    "GET /",
    "GET /api/health",
    "GET /api/computadores",
    "GET /api/computadores/:id",
    "POST /api/computadores",
    "PUT /api/computadores/:id",
    "DELETE /api/computadores/:id",
    "GET /api/estadisticas",
    "GET /api/export/excel",
    "GET /uploads/:path",
]


@router.get("/", summary="Service description")
async def root(request: Request) -> Dict[str, Any]:
    attachments = request.app.state.attachments
    storage: Dict[str, Any] = {
        "mode": attachments.mode,
        "description": STORAGE_DESCRIPTIONS[attachments.mode],
    }
    if attachments.local_store is not None:
        storage["uploadsDir"] = str(attachments.local_store.root)
    if attachments.remote_store is not None and attachments.remote_store.configured:
        storage["bucket"] = attachments.remote_store.bucket

    return {
        "message": "API de Soporte Técnico - Registro de Computadores",
        "version": __version__,
        "features": [
            "CRUD de registros de equipos",
            "Imágenes en disco local, Supabase Storage o modo híbrido",
            "Estadísticas para el panel de control",
            "Exportación de datos a Excel",
        ],
        "endpoints": AVAILABLE_ENDPOINTS,
        "storage": storage,
        "docs": "/docs",
    }
