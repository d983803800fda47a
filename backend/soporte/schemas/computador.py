"""
Soporte API — Pydantic Request/Response Schemas
=================================================

What:  Pydantic models defining the API contract with the frontend.
Why:   Automatic serialization and OpenAPI docs; request bodies are parsed
       into typed objects before reaching the service layer.
How:   Required-field checks are NOT expressed here: every record field is
       optional in the payload and the service answers 400 with the full list
       of required fields, which is what existing clients expect (FastAPI's
       automatic 422 would break them).

Attachment storage tag:
    Every image returned carries `storage` ("local" or "remote"). The tag is
    informational: the attachment resolver derives it from the storage mode
    and the reference shape, so a tag sent by a client or left by another
    server variant never decides how a reference is resolved.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Estado(str, Enum):
    OPERATIVO = "operativo"
    MANTENIMIENTO = "mantenimiento"
    DANADO = "dañado"


class WindowsUpdate(str, Enum):
    SI = "si"
    NO = "no"


class StorageKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


def is_url(reference: Optional[str]) -> bool:
    return bool(reference) and reference.startswith(("http://", "https://"))


# ══════════════════════════════════════════════════════════════════════════
# Attachments
# ══════════════════════════════════════════════════════════════════════════


class ImagenEntrada(BaseModel):
    """
    Image descriptor as submitted by the client.

    Either a new image (`base64` holds a data URI) or a reference to an image
    returned earlier by the API (`filename` and/or `url`).
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = None
    base64_data: Optional[str] = Field(default=None, alias="base64")
    filename: Optional[str] = None
    url: Optional[str] = None
    size: Optional[int] = None
    fecha_subida: Optional[str] = None


class Imagen(BaseModel):
    """Normalized attachment as stored in the record's `imagenes` array."""
    model_config = ConfigDict(extra="ignore")

    title: str
    filename: str = Field(description="Relative path, object key, or full URL")
    url: str = Field(description="Publicly resolvable URL")
    size: int = 0
    fecha_subida: str
    storage: StorageKind

    @classmethod
    def from_stored(
        cls, data: Dict[str, Any], reference: str, storage: StorageKind
    ) -> "Imagen":
        """Build an Imagen from a JSONB element already classified by the resolver."""
        return cls(
            title=data.get("title") or "Imagen",
            filename=reference,
            url=data.get("url") or reference,
            size=data.get("size") or 0,
            fecha_subida=data.get("fecha_subida") or "",
            storage=storage,
        )

    def to_stored(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class ComputadorPayload(BaseModel):
    """Body of POST and PUT /api/computadores."""
    model_config = ConfigDict(extra="ignore")

    equipo_id: Optional[str] = None
    serial_number: Optional[str] = None
    placa_ml: Optional[str] = None
    latitud: Optional[float] = None
    longitud: Optional[float] = None
    direccion_automatica: Optional[str] = None
    ubicacion_manual: Optional[str] = None
    responsable: Optional[str] = None
    cargo: Optional[str] = None
    estado: Optional[str] = None
    windows_update: Optional[str] = None
    observaciones: Optional[str] = None
    problemas_detectados: Optional[str] = None
    revisor: Optional[str] = None
    imagenes: Optional[List[ImagenEntrada]] = None

    @field_validator("latitud", "longitud", mode="before")
    @classmethod
    def blank_coordinate_is_none(cls, v: Any) -> Any:
        """Forms send "" for an empty coordinate."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ComputadorFiltros(BaseModel):
    """Query-string filters of GET /api/computadores."""
    estado: Optional[str] = None
    responsable: Optional[str] = None
    equipo_id: Optional[str] = None
    serial_number: Optional[str] = None
    revisor: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class ComputadorResponse(BaseModel):
    """Full record as returned by list and detail endpoints."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    equipo_id: str
    serial_number: str
    placa_ml: Optional[str] = None
    latitud: Optional[float] = None
    longitud: Optional[float] = None
    direccion_automatica: Optional[str] = None
    ubicacion_manual: Optional[str] = None
    responsable: str
    cargo: str
    estado: str
    windows_update: str
    imagenes: List[Imagen] = Field(default_factory=list)
    observaciones: Optional[str] = None
    problemas_detectados: Optional[str] = None
    fecha_revision: Optional[datetime] = None
    fecha_actualizacion: Optional[datetime] = None
    revisor: Optional[str] = None


class CreateResponse(BaseModel):
    """Returned by POST /api/computadores with HTTP 201."""
    id: int
    equipo_id: str
    serial_number: str
    imagenes_guardadas: int = Field(description="Images stored by this request")
    message: str = "Registro creado exitosamente"


class UpdateResponse(BaseModel):
    message: str = "Registro actualizado exitosamente"
    imagenes_guardadas: int = Field(description="Images on the record after the update")
    imagenes_nuevas: int = Field(description="Images stored by this request")


class MessageResponse(BaseModel):
    message: str


class EstadisticasResponse(BaseModel):
    """Aggregate counters returned by GET /api/estadisticas."""
    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    operativos: int = 0
    mantenimiento: int = 0
    danados: int = Field(default=0, alias="dañados")
    windows_si: int = 0
    windows_no: int = 0
    revisiones_hoy: int = 0
    con_problemas: int = 0
    con_ubicacion: int = 0
    con_imagenes: int = 0
    total_imagenes: int = 0
    # Aliases kept for the first dashboard release
    total_equipos: int = Field(default=0, alias="totalEquipos")
    windows_actualizados: int = Field(default=0, alias="windowsActualizados")


class ErrorResponse(BaseModel):
    """Standardized error envelope for all API errors."""
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health probe body; upload fields are present only when disk storage is used."""
    status: str = Field(description="ok or error")
    timestamp: str
    version: str
    database: str = Field(description="connected or disconnected")
    storage: str = Field(description="Active storage mode")
    mode: str = Field(description="Human-readable storage backends")
    uptime: float = Field(description="Seconds since service started")
    uploadsDir: Optional[str] = None
    uploadsExists: Optional[bool] = None
    uploadsWritable: Optional[bool] = None
    error: Optional[str] = None
