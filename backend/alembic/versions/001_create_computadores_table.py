"""Create computadores table

Revision ID: 001
Revises: None
Create Date: 2024-06-01 00:00:00.000000+00:00

What:  Creates the `computadores` table holding one support record per
       piece of equipment, with its inline `imagenes` JSONB array.
How:   Existing deployments that created the table by hand can be adopted
       with `alembic stamp 001`.

Rollback: downgrade() drops the table (destructive, all records lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "computadores",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("equipo_id", sa.String(100), nullable=False),
        sa.Column("serial_number", sa.String(100), nullable=False),
        sa.Column("placa_ml", sa.String(100), nullable=True),

        # Geolocation captured by the inspection form
        sa.Column("latitud", sa.Numeric(10, 8), nullable=True),
        sa.Column("longitud", sa.Numeric(11, 8), nullable=True),
        sa.Column("direccion_automatica", sa.Text(), nullable=True),
        sa.Column("ubicacion_manual", sa.Text(), nullable=True),

        sa.Column("responsable", sa.String(200), nullable=False),
        sa.Column("cargo", sa.String(100), nullable=False),
        sa.Column("estado", sa.String(20), nullable=False),
        sa.Column("windows_update", sa.String(5), nullable=False),

        # [{title, filename, url, size, fecha_subida, storage}, ...]
        sa.Column(
            "imagenes",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=True,
        ),

        sa.Column("observaciones", sa.Text(), nullable=True),
        sa.Column("problemas_detectados", sa.Text(), nullable=True),
        sa.Column(
            "fecha_revision",
            sa.TIMESTAMP(timezone=False),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column(
            "fecha_actualizacion",
            sa.TIMESTAMP(timezone=False),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column("revisor", sa.String(100), nullable=True),

        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("equipo_id", name="computadores_equipo_id_key"),
        sa.CheckConstraint(
            "estado IN ('operativo', 'mantenimiento', 'dañado')",
            name="computadores_estado_check",
        ),
        sa.CheckConstraint(
            "windows_update IN ('si', 'no')",
            name="computadores_windows_update_check",
        ),
    )

    op.create_index("idx_serial_number", "computadores", ["serial_number"])
    op.create_index("idx_equipo_id", "computadores", ["equipo_id"])
    op.create_index("idx_estado", "computadores", ["estado"])
    op.create_index("idx_fecha_revision", "computadores", ["fecha_revision"])


def downgrade() -> None:
    """Drop the table. WARNING: destructive, every record is lost."""
    op.drop_index("idx_fecha_revision", table_name="computadores")
    op.drop_index("idx_estado", table_name="computadores")
    op.drop_index("idx_equipo_id", table_name="computadores")
    op.drop_index("idx_serial_number", table_name="computadores")
    op.drop_table("computadores")
