"""
Soporte API — Computador Service (Record Store Adapter)
=========================================================

What:  CRUD, statistics, and flat export over the `computadores` table.
Why:   Keeps validation, attachment handling, and database error mapping out
       of the route handlers.
How:   Each operation runs one query on the request's AsyncSession; write
       paths pass the `imagenes` array through the AttachmentResolver first.
Who:   Instantiated per request by routes via `get_computador_service`.

Database error mapping (Postgres SQLSTATE):
    23505 unique_violation    → ConflictError   (400)
    23514 check_violation     → ValidationError (400)
    23502 not_null_violation  → ValidationError (400)
    anything else             → DatabaseError   (500, driver message in details)

Consistency:
    Image files and rows are not written atomically. When the row write fails,
    images stored by that request are deleted best-effort; when the row write
    succeeds, replaced images are deleted afterwards.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from soporte.database import (
    CHECK_VIOLATION,
    NOT_NULL_VIOLATION,
    UNIQUE_VIOLATION,
    sqlstate_of,
)
from soporte.exceptions import (
    ConflictError,
    DatabaseError,
    MissingFieldsError,
    NotFoundError,
    ValidationError,
)
from soporte.models.computador import Computador
from soporte.schemas.computador import (
    ComputadorFiltros,
    ComputadorPayload,
    ComputadorResponse,
    CreateResponse,
    Estado,
    EstadisticasResponse,
    MessageResponse,
    UpdateResponse,
    WindowsUpdate,
)
from soporte.services.attachment_resolver import AttachmentResolver

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = [
    "equipo_id",
    "serial_number",
    "responsable",
    "cargo",
    "estado",
    "windows_update",
]

# Columns written from the payload on create and replaced on update
MUTABLE_FIELDS = [
    "equipo_id",
    "serial_number",
    "placa_ml",
    "latitud",
    "longitud",
    "direccion_automatica",
    "ubicacion_manual",
    "responsable",
    "cargo",
    "estado",
    "windows_update",
    "observaciones",
    "problemas_detectados",
    "revisor",
]

# Substring (ILIKE) filters of GET /api/computadores
TEXT_FILTERS = ["responsable", "equipo_id", "serial_number", "revisor"]


# ══════════════════════════════════════════════════════════════════════════
# Pure helpers
# ══════════════════════════════════════════════════════════════════════════


def validate_payload(payload: ComputadorPayload) -> None:
    """
    Raises:
        MissingFieldsError if any required field is absent or blank
        ValidationError if estado / windows_update are outside their enums
    """
    missing = [
        name for name in REQUIRED_FIELDS
        if not (getattr(payload, name) or "").strip()
    ]
    if missing:
        raise MissingFieldsError(required=REQUIRED_FIELDS, missing=missing)

    estados = [e.value for e in Estado]
    if payload.estado not in estados:
        raise ValidationError(
            message="Valor no válido",
            field="estado",
            context={"allowed": estados, "value": payload.estado},
        )
    opciones = [w.value for w in WindowsUpdate]
    if payload.windows_update not in opciones:
        raise ValidationError(
            message="Valor no válido",
            field="windows_update",
            context={"allowed": opciones, "value": payload.windows_update},
        )


def classify_database_error(exc: DBAPIError, operation: str) -> Exception:
    """Translate a driver error into the application's exception taxonomy."""
    code = sqlstate_of(exc)
    detail = str(exc.orig) if exc.orig is not None else str(exc)

    if code == UNIQUE_VIOLATION:
        return ConflictError(context={"code": code})
    if code == CHECK_VIOLATION:
        return ValidationError(
            message="Valor no válido",
            context={
                "code": code,
                "details": "El valor proporcionado no cumple con las restricciones",
            },
        )
    if code == NOT_NULL_VIOLATION:
        return ValidationError(
            message="Campo requerido faltante",
            context={"code": code, "details": detail},
        )

    logger.error("Database error during %s: [%s] %s", operation, code, detail)
    return DatabaseError(
        context={"operation": operation, "code": code or "DATABASE_ERROR", "details": detail}
    )


def _is_today(value: Optional[datetime], today: date) -> bool:
    if value is None:
        return False
    if value.tzinfo is not None:
        value = value.astimezone()  # server-local calendar date
    return value.date() == today


def compute_statistics(
    rows: Iterable[Any], today: Optional[date] = None
) -> EstadisticasResponse:
    """
    Aggregate counters over a full record set.

    Args:
        rows: objects exposing estado, windows_update, imagenes,
              problemas_detectados, latitud, longitud, fecha_revision
        today: reference date (defaults to the server-local date)
    """
    today = today or date.today()
    stats = EstadisticasResponse()

    for row in rows:
        stats.total += 1
        if row.estado == Estado.OPERATIVO.value:
            stats.operativos += 1
        elif row.estado == Estado.MANTENIMIENTO.value:
            stats.mantenimiento += 1
        elif row.estado == Estado.DANADO.value:
            stats.danados += 1

        if row.windows_update == WindowsUpdate.SI.value:
            stats.windows_si += 1
        elif row.windows_update == WindowsUpdate.NO.value:
            stats.windows_no += 1

        if _is_today(row.fecha_revision, today):
            stats.revisiones_hoy += 1
        if row.problemas_detectados and row.problemas_detectados.strip():
            stats.con_problemas += 1
        if row.latitud is not None and row.longitud is not None:
            stats.con_ubicacion += 1

        imagenes = row.imagenes if isinstance(row.imagenes, list) else []
        if imagenes:
            stats.con_imagenes += 1
        stats.total_imagenes += len(imagenes)

    stats.total_equipos = stats.total
    stats.windows_actualizados = stats.windows_si
    return stats


def _fecha(value: Optional[datetime]) -> str:
    return f"{value.day}/{value.month}/{value.year}" if value else ""


def _hora(value: Optional[datetime]) -> str:
    return f"{value.hour}:{value.minute:02d}:{value.second:02d}" if value else ""


def flatten_for_export(row: Any) -> Dict[str, Any]:
    """One spreadsheet-ready row with display labels and placeholders."""
    imagenes = row.imagenes if isinstance(row.imagenes, list) else None
    if imagenes is None:
        descripcion = "Sin imágenes"
    else:
        descripcion = "; ".join(
            str(img.get("title") or "") for img in imagenes if isinstance(img, dict)
        )

    return {
        "ID EQUIPO": row.equipo_id,
        "SERIAL": row.serial_number,
        "PLACA/ML": row.placa_ml or "NO ASIGNADO",
        "RESPONSABLE": row.responsable,
        "CARGO": row.cargo,
        "ESTADO": (row.estado or "").upper(),
        "WINDOWS UPDATE": "SÍ" if row.windows_update == WindowsUpdate.SI.value else "NO",
        "UBICACIÓN": row.direccion_automatica or row.ubicacion_manual or "NO ESPECIFICADA",
        "PROBLEMAS": row.problemas_detectados or "NINGUNO",
        "OBSERVACIONES": row.observaciones or "SIN OBSERVACIONES",
        "REVISOR": row.revisor or "NO ESPECIFICADO",
        "FECHA REVISIÓN": _fecha(row.fecha_revision),
        "HORA REVISIÓN": _hora(row.fecha_revision),
        "CANTIDAD IMÁGENES": len(imagenes) if imagenes else 0,
        "DESCRIPCIÓN IMÁGENES": descripcion,
    }


def _column_values(payload: ComputadorPayload) -> Dict[str, Any]:
    values = {name: getattr(payload, name) for name in MUTABLE_FIELDS}
    for coord in ("latitud", "longitud"):
        if values[coord] is not None:
            values[coord] = Decimal(str(values[coord]))
    return values


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════


class ComputadorService:
    """
    Business logic for equipment records.

    Responsibilities:
        - list / get_one: queries plus read-time image visibility
        - create / update / delete: validation, images, error mapping
        - statistics / export_flat: whole-table reports
    """

    def __init__(self, attachments: AttachmentResolver):
        self.attachments = attachments

    def _to_response(self, row: Computador) -> ComputadorResponse:
        data = {
            name: getattr(row, name)
            for name in ComputadorResponse.model_fields
            if name != "imagenes"
        }
        data["imagenes"] = self.attachments.visible(row.imagenes)
        return ComputadorResponse.model_validate(data)

    async def _find(self, db: AsyncSession, record_id: int) -> Computador:
        try:
            result = await db.execute(select(Computador).where(Computador.id == record_id))
        except DBAPIError as e:
            raise classify_database_error(e, "obtener registro")
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(resource="registro", resource_id=str(record_id))
        return row

    async def list(
        self, db: AsyncSession, filtros: Optional[ComputadorFiltros] = None
    ) -> List[ComputadorResponse]:
        """
        Records matching the filters, newest review first.

        Query plan:
            SELECT * FROM computadores
            WHERE estado = :estado AND responsable ILIKE '%' || :x || '%' ...
            ORDER BY fecha_revision DESC
        """
        filtros = filtros or ComputadorFiltros()
        query = select(Computador)

        if filtros.estado:
            query = query.where(Computador.estado == filtros.estado)
        for name in TEXT_FILTERS:
            value = getattr(filtros, name)
            if value:
                query = query.where(getattr(Computador, name).ilike(f"%{value}%"))

        query = query.order_by(desc(Computador.fecha_revision))

        try:
            result = await db.execute(query)
        except DBAPIError as e:
            raise classify_database_error(e, "obtener computadores")

        rows = list(result.scalars().all())
        logger.info("Found %d records", len(rows))
        return [self._to_response(row) for row in rows]

    async def get_one(self, db: AsyncSession, record_id: int) -> ComputadorResponse:
        """
        Raises:
            NotFoundError: no record with this id (→ 404)
        """
        row = await self._find(db, record_id)
        return self._to_response(row)

    async def create(self, db: AsyncSession, payload: ComputadorPayload) -> CreateResponse:
        """
        Insert a record with its initial images.

        Raises:
            MissingFieldsError / ValidationError (→ 400)
            ConflictError: equipo_id already exists (→ 400)
            DatabaseError (→ 500)
        """
        validate_payload(payload)
        resolved = await self.attachments.resolve(payload.imagenes, payload.equipo_id)

        row = Computador(
            **_column_values(payload),
            imagenes=[imagen.to_stored() for imagen in resolved.imagenes],
        )
        db.add(row)
        try:
            await db.flush()
        except DBAPIError as e:
            await self.attachments.discard(resolved.creadas)
            raise classify_database_error(e, "crear registro")

        logger.info(
            "Record created with id %s and %d stored images", row.id, len(resolved.imagenes)
        )
        return CreateResponse(
            id=row.id,
            equipo_id=row.equipo_id,
            serial_number=row.serial_number,
            imagenes_guardadas=resolved.nuevas,
            message="Registro creado exitosamente",
        )

    async def update(
        self, db: AsyncSession, record_id: int, payload: ComputadorPayload
    ) -> UpdateResponse:
        """
        Replace every mutable field and the images of a record.

        Images that were on the record and are missing from the new array are
        deleted only once the change is committed.

        Raises:
            NotFoundError (→ 404)
            MissingFieldsError / ValidationError / ConflictError (→ 400)
        """
        row = await self._find(db, record_id)
        validate_payload(payload)

        previous = self.attachments.load(row.imagenes)
        resolved = await self.attachments.resolve(payload.imagenes, payload.equipo_id)

        for name, value in _column_values(payload).items():
            setattr(row, name, value)
        row.imagenes = [imagen.to_stored() for imagen in resolved.imagenes]
        row.fecha_actualizacion = func.now()

        try:
            await db.flush()
            await db.commit()
        except DBAPIError as e:
            await self.attachments.discard(resolved.creadas)
            raise classify_database_error(e, "actualizar registro")

        await self.attachments.discard_replaced(previous, resolved.imagenes)
        logger.info("Record %s updated with %d images", record_id, len(resolved.imagenes))
        return UpdateResponse(
            imagenes_guardadas=len(resolved.imagenes),
            imagenes_nuevas=resolved.nuevas,
        )

    async def delete(self, db: AsyncSession, record_id: int) -> MessageResponse:
        """
        Delete a record, then, once committed, its stored images (best-effort).

        Raises:
            NotFoundError (→ 404)
        """
        row = await self._find(db, record_id)
        imagenes = self.attachments.load(row.imagenes)

        try:
            await db.delete(row)
            await db.commit()
        except DBAPIError as e:
            raise classify_database_error(e, "eliminar registro")

        removed = await self.attachments.discard(imagenes)
        logger.info("Record %s deleted (%d images removed)", record_id, removed)
        return MessageResponse(message="Registro eliminado exitosamente")

    async def statistics(self, db: AsyncSession) -> EstadisticasResponse:
        query = select(
            Computador.estado,
            Computador.windows_update,
            Computador.imagenes,
            Computador.problemas_detectados,
            Computador.latitud,
            Computador.longitud,
            Computador.fecha_revision,
        )
        try:
            result = await db.execute(query)
        except DBAPIError as e:
            raise classify_database_error(e, "obtener estadísticas")
        return compute_statistics(result.all())

    async def export_flat(self, db: AsyncSession) -> List[Dict[str, Any]]:
        query = select(Computador).order_by(desc(Computador.fecha_revision))
        try:
            result = await db.execute(query)
        except DBAPIError as e:
            raise classify_database_error(e, "exportar datos")
        rows = [flatten_for_export(row) for row in result.scalars().all()]
        logger.info("Prepared %d rows for export", len(rows))
        return rows

