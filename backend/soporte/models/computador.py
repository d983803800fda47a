"""
Soporte API — Computador SQLAlchemy Model
===========================================

What:  ORM model for the `computadores` table (one row per physical machine).
Why:   Maps rows to Python objects for type-safe queries and for Alembic.
Who:   Used by ComputadorService for CRUD and by the bootstrap table check.

Table Design:
    - SERIAL primary key: the frontend addresses records by integer id
    - equipo_id UNIQUE: duplicate inserts fail with SQLSTATE 23505, which the
      service turns into a ConflictError
    - estado / windows_update CHECK constraints back the enum validation
    - imagenes JSONB array: attachments have no table of their own
    - TIMESTAMP without time zone: matches the schema created in Supabase
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import CheckConstraint, Index, Integer, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from soporte.database import Base


class Computador(Base):
    """
    Equipment support record.

    Lifecycle:
        1. Created by POST /api/computadores with an initial image batch
        2. Replaced in place by PUT (imagenes list fully replaced)
        3. Deleted by DELETE, which also removes its stored images
    """

    __tablename__ = "computadores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    equipo_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)
    placa_ml: Mapped[Optional[str]] = mapped_column(String(100))

    # ── Location ──────────────────────────────────────────────────────────
    latitud: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 8))
    longitud: Mapped[Optional[Decimal]] = mapped_column(Numeric(11, 8))
    direccion_automatica: Mapped[Optional[str]] = mapped_column(Text)
    ubicacion_manual: Mapped[Optional[str]] = mapped_column(Text)

    # ── Responsible person ────────────────────────────────────────────────
    responsable: Mapped[str] = mapped_column(String(200), nullable=False)
    cargo: Mapped[str] = mapped_column(String(100), nullable=False)

    # ── Inspection ────────────────────────────────────────────────────────
    estado: Mapped[str] = mapped_column(String(20), nullable=False)
    windows_update: Mapped[str] = mapped_column(String(5), nullable=False)
    imagenes: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(
        JSONB,
        default=list,
        server_default=text("'[]'::jsonb"),
    )
    observaciones: Mapped[Optional[str]] = mapped_column(Text)
    problemas_detectados: Mapped[Optional[str]] = mapped_column(Text)
    fecha_revision: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=False),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    fecha_actualizacion: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=False),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    revisor: Mapped[Optional[str]] = mapped_column(String(100))

    __table_args__ = (
        CheckConstraint(
            "estado IN ('operativo', 'mantenimiento', 'dañado')",
            name="computadores_estado_check",
        ),
        CheckConstraint(
            "windows_update IN ('si', 'no')",
            name="computadores_windows_update_check",
        ),
        Index("idx_serial_number", "serial_number"),
        Index("idx_equipo_id", "equipo_id"),
        Index("idx_estado", "estado"),
        Index("idx_fecha_revision", "fecha_revision"),
    )

    # fecha_revision / fecha_actualizacion are filled by the server on INSERT
    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self) -> str:
        return (
            f"<Computador(id={self.id}, equipo_id='{self.equipo_id}', "
            f"estado='{self.estado}')>"
        )
