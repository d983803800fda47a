"""
Soporte API — Equipment Record Routes
=======================================

What:  CRUD over /api/computadores plus the statistics and export reports.
Why:   The frontend's inspection form and dashboard talk only to these routes.
How:   Thin handlers: parse path/query/body, delegate to ComputadorService,
       return its result. Every route sits behind the readiness gate, so
       nothing touches the database until the startup table check passed.

Route Inventory:
    GET    /api/computadores            list (filters: estado, responsable,
                                        equipo_id, serial_number, revisor)
    GET    /api/computadores/{id}       detail
    POST   /api/computadores            create → 201
    PUT    /api/computadores/{id}       full replacement
    DELETE /api/computadores/{id}       delete record and its images
    GET    /api/estadisticas            aggregate counters
    GET    /api/export/excel            flat rows for spreadsheet export
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from soporte.bootstrap import require_database
from soporte.database import get_db_session
from soporte.schemas.computador import (
    ComputadorFiltros,
    ComputadorPayload,
    ComputadorResponse,
    CreateResponse,
    ErrorResponse,
    EstadisticasResponse,
    MessageResponse,
    UpdateResponse,
)
from soporte.services.computador_service import ComputadorService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["Computadores"],
    dependencies=[Depends(require_database)],
    responses={500: {"description": "Database unavailable or failed", "model": ErrorResponse}},
)


def get_computador_service(request: Request) -> ComputadorService:
    """Service bound to the attachment resolver built at app creation."""
    return ComputadorService(request.app.state.attachments)


def get_filtros(
    estado: Optional[str] = Query(default=None, description="Exact status"),
    responsable: Optional[str] = Query(default=None, description="Substring, case-insensitive"),
    equipo_id: Optional[str] = Query(default=None, description="Substring, case-insensitive"),
    serial_number: Optional[str] = Query(default=None, description="Substring, case-insensitive"),
    revisor: Optional[str] = Query(default=None, description="Substring, case-insensitive"),
) -> ComputadorFiltros:
    return ComputadorFiltros(
        estado=estado,
        responsable=responsable,
        equipo_id=equipo_id,
        serial_number=serial_number,
        revisor=revisor,
    )


@router.get(
    "/computadores",
    response_model=List[ComputadorResponse],
    summary="List equipment records",
    description="Records matching the filters, newest review first.",
)
async def list_computadores(
    filtros: ComputadorFiltros = Depends(get_filtros),
    db: AsyncSession = Depends(get_db_session),
    service: ComputadorService = Depends(get_computador_service),
) -> List[ComputadorResponse]:
    return await service.list(db, filtros)


@router.get(
    "/computadores/{record_id}",
    response_model=ComputadorResponse,
    responses={404: {"description": "Record not found", "model": ErrorResponse}},
    summary="Get one equipment record",
)
async def get_computador(
    record_id: int,
    db: AsyncSession = Depends(get_db_session),
    service: ComputadorService = Depends(get_computador_service),
) -> ComputadorResponse:
    return await service.get_one(db, record_id)


@router.post(
    "/computadores",
    status_code=201,
    response_model=CreateResponse,
    responses={400: {"description": "Missing/invalid field or duplicate equipo_id", "model": ErrorResponse}},
    summary="Create an equipment record",
    description=(
        "Creates a record. New images are sent inline in `imagenes` as "
        "`{title, base64: 'data:image/<type>;base64,...'}` and stored according "
        "to STORAGE_MODE."
    ),
)
async def create_computador(
    payload: ComputadorPayload,
    db: AsyncSession = Depends(get_db_session),
    service: ComputadorService = Depends(get_computador_service),
) -> CreateResponse:
    logger.info("Creating record %s", payload.equipo_id)
    return await service.create(db, payload)


@router.put(
    "/computadores/{record_id}",
    response_model=UpdateResponse,
    responses={
        400: {"description": "Missing/invalid field or duplicate equipo_id", "model": ErrorResponse},
        404: {"description": "Record not found", "model": ErrorResponse},
    },
    summary="Replace an equipment record",
    description=(
        "Replaces every field and the image list. Existing images are kept by "
        "sending them back as returned by GET; omitted images are deleted."
    ),
)
async def update_computador(
    record_id: int,
    payload: ComputadorPayload,
    db: AsyncSession = Depends(get_db_session),
    service: ComputadorService = Depends(get_computador_service),
) -> UpdateResponse:
    logger.info("Updating record %s", record_id)
    return await service.update(db, record_id, payload)


@router.delete(
    "/computadores/{record_id}",
    response_model=MessageResponse,
    responses={404: {"description": "Record not found", "model": ErrorResponse}},
    summary="Delete an equipment record and its images",
)
async def delete_computador(
    record_id: int,
    db: AsyncSession = Depends(get_db_session),
    service: ComputadorService = Depends(get_computador_service),
) -> MessageResponse:
    logger.info("Deleting record %s", record_id)
    return await service.delete(db, record_id)


@router.get(
    "/estadisticas",
    response_model=EstadisticasResponse,
    response_model_by_alias=True,
    summary="Aggregate counters for the dashboard",
)
async def get_estadisticas(
    db: AsyncSession = Depends(get_db_session),
    service: ComputadorService = Depends(get_computador_service),
) -> EstadisticasResponse:
    return await service.statistics(db)


@router.get(
    "/export/excel",
    response_model=List[Dict[str, Any]],
    summary="Flat rows for spreadsheet export",
    description="One row per record with display labels; the client builds the workbook.",
)
async def export_excel(
    db: AsyncSession = Depends(get_db_session),
    service: ComputadorService = Depends(get_computador_service),
) -> List[Dict[str, Any]]:
    return await service.export_flat(db)
