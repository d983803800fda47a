"""
Soporte API — Computador Service Unit Tests
=============================================

What:  Validation, SQLSTATE classification, statistics, export rows, and the
       CRUD workflow of ComputadorService.
How:   Mock AsyncSession (no database); local image store under tmp_path so
       image side effects can be checked on disk.

What we test:
    ✅ Required-field and enum validation
    ✅ 23505 / 23514 / 23502 / other → Conflict / Validation / Database errors
    ✅ Statistics on empty and mixed record sets
    ✅ Export labels, placeholders and date formatting
    ✅ create / get_one / update / delete including image cleanup
"""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import DBAPIError

from soporte.exceptions import (
    ConflictError,
    DatabaseError,
    MissingFieldsError,
    NotFoundError,
    ValidationError,
)
from soporte.schemas.computador import ComputadorFiltros, ComputadorPayload
from soporte.services.attachment_resolver import AttachmentResolver
from soporte.services.computador_service import (
    REQUIRED_FIELDS,
    ComputadorService,
    classify_database_error,
    compute_statistics,
    flatten_for_export,
    validate_payload,
)


class FakePgError(Exception):
    """Driver error carrying a SQLSTATE like asyncpg's exceptions do."""

    def __init__(self, sqlstate, message="driver failure"):
        super().__init__(message)
        self.sqlstate = sqlstate


def db_error(sqlstate, message="driver failure") -> DBAPIError:
    return DBAPIError("INSERT INTO computadores ...", {}, FakePgError(sqlstate, message))


def result_with(row=None, rows=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = row
    result.scalars.return_value.all.return_value = rows or []
    result.all.return_value = rows or []
    return result


# ══════════════════════════════════════════════════════════════════════════
# Pure helpers
# ══════════════════════════════════════════════════════════════════════════


class TestValidatePayload:

    def test_complete_payload_passes(self, required_payload):
        validate_payload(ComputadorPayload(**required_payload))

    def test_missing_field_lists_required_set(self, required_payload):
        del required_payload["cargo"]

        with pytest.raises(MissingFieldsError) as exc_info:
            validate_payload(ComputadorPayload(**required_payload))

        assert exc_info.value.message == "Campos requeridos faltantes"
        assert exc_info.value.context["required"] == REQUIRED_FIELDS
        assert exc_info.value.missing == ["cargo"]

    def test_blank_field_counts_as_missing(self, required_payload):
        required_payload["responsable"] = "   "
        with pytest.raises(MissingFieldsError):
            validate_payload(ComputadorPayload(**required_payload))

    def test_invalid_estado(self, required_payload):
        required_payload["estado"] = "roto"
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(ComputadorPayload(**required_payload))
        assert exc_info.value.field == "estado"

    def test_invalid_windows_update(self, required_payload):
        required_payload["windows_update"] = "maybe"
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(ComputadorPayload(**required_payload))
        assert exc_info.value.field == "windows_update"

    def test_blank_coordinates_become_none(self, required_payload):
        payload = ComputadorPayload(**required_payload, latitud="", longitud=" ")
        assert payload.latitud is None and payload.longitud is None


class TestClassifyDatabaseError:

    def test_unique_violation_is_conflict(self):
        err = classify_database_error(db_error("23505"), "crear registro")
        assert isinstance(err, ConflictError)
        assert err.message == "El ID del equipo ya existe"

    def test_check_violation_is_validation(self):
        err = classify_database_error(db_error("23514"), "crear registro")
        assert isinstance(err, ValidationError)
        assert err.message == "Valor no válido"

    def test_not_null_violation_is_validation(self):
        err = classify_database_error(db_error("23502"), "crear registro")
        assert isinstance(err, ValidationError)
        assert err.message == "Campo requerido faltante"

    def test_other_errors_carry_driver_message(self):
        err = classify_database_error(db_error("53300", "too many connections"), "crear registro")
        assert isinstance(err, DatabaseError)
        assert err.context["details"] == "too many connections"
        assert err.context["code"] == "53300"


def _stat_row(**overrides):
    values = dict(
        estado="operativo",
        windows_update="si",
        imagenes=[],
        problemas_detectados=None,
        latitud=None,
        longitud=None,
        fecha_revision=datetime(2024, 6, 10, 12, 0, 0),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestComputeStatistics:

    def test_empty_set_is_all_zero(self):
        stats = compute_statistics([]).model_dump(by_alias=True)
        assert set(stats) >= {"dañados", "totalEquipos", "windowsActualizados"}
        assert all(value == 0 for value in stats.values())

    def test_mixed_records(self):
        rows = [
            _stat_row(imagenes=[{"title": "a"}, {"title": "b"}], latitud=Decimal("4.6"), longitud=Decimal("-74.1")),
            _stat_row(estado="mantenimiento", windows_update="no", problemas_detectados="Pantalla rota"),
            _stat_row(estado="dañado", problemas_detectados="  ", latitud=Decimal("0"), longitud=None,
                      fecha_revision=datetime(2024, 6, 9, 23, 59, 59)),
            _stat_row(imagenes=None, fecha_revision=None),
        ]

        stats = compute_statistics(rows, today=date(2024, 6, 10))

        assert stats.total == 4
        assert stats.operativos == 2
        assert stats.mantenimiento == 1
        assert stats.danados == 1
        assert stats.windows_si == 3
        assert stats.windows_no == 1
        assert stats.revisiones_hoy == 2
        assert stats.con_problemas == 1
        assert stats.con_ubicacion == 1
        assert stats.con_imagenes == 1
        assert stats.total_imagenes == 2
        assert stats.total_equipos == 4
        assert stats.windows_actualizados == 3

    def test_zero_coordinates_count_as_location(self):
        stats = compute_statistics([_stat_row(latitud=Decimal("0"), longitud=Decimal("0"))])
        assert stats.con_ubicacion == 1


class TestFlattenForExport:

    def test_placeholders(self, make_computador):
        row = flatten_for_export(make_computador(windows_update="no", imagenes=[]))

        assert row["ID EQUIPO"] == "PC-001"
        assert row["PLACA/ML"] == "NO ASIGNADO"
        assert row["ESTADO"] == "OPERATIVO"
        assert row["WINDOWS UPDATE"] == "NO"
        assert row["UBICACIÓN"] == "NO ESPECIFICADA"
        assert row["PROBLEMAS"] == "NINGUNO"
        assert row["OBSERVACIONES"] == "SIN OBSERVACIONES"
        assert row["REVISOR"] == "NO ESPECIFICADO"
        assert row["CANTIDAD IMÁGENES"] == 0
        assert row["DESCRIPCIÓN IMÁGENES"] == ""

    def test_filled_row(self, make_computador):
        row = flatten_for_export(make_computador(
            placa_ml="ML-9",
            ubicacion_manual="Oficina 3",
            problemas_detectados="Teclado",
            revisor="Luis",
            imagenes=[{"title": "Frente"}, {"title": "Serial"}],
        ))

        assert row["WINDOWS UPDATE"] == "SÍ"
        assert row["UBICACIÓN"] == "Oficina 3"
        assert row["FECHA REVISIÓN"] == "10/6/2024"
        assert row["HORA REVISIÓN"] == "9:05:07"
        assert row["CANTIDAD IMÁGENES"] == 2
        assert row["DESCRIPCIÓN IMÁGENES"] == "Frente; Serial"

    def test_automatic_address_preferred(self, make_computador):
        row = flatten_for_export(make_computador(
            direccion_automatica="Calle 1 # 2-3", ubicacion_manual="Oficina 3"
        ))
        assert row["UBICACIÓN"] == "Calle 1 # 2-3"

    def test_null_imagenes(self, make_computador):
        row = flatten_for_export(make_computador(imagenes=None))
        assert row["DESCRIPCIÓN IMÁGENES"] == "Sin imágenes"


# ══════════════════════════════════════════════════════════════════════════
# Service workflow
# ══════════════════════════════════════════════════════════════════════════


class TestComputadorService:

    @pytest.fixture(autouse=True)
    def _service(self, local_store):
        self.store = local_store
        self.service = ComputadorService(AttachmentResolver("local", local_store))

    def _assign_id_on_flush(self, session, record_id=1):
        async def flush():
            row = session.add.call_args[0][0]
            row.id = record_id
        session.flush = AsyncMock(side_effect=flush)

    # ── create ────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_create_without_images(self, mock_db_session, required_payload):
        self._assign_id_on_flush(mock_db_session)

        result = await self.service.create(mock_db_session, ComputadorPayload(**required_payload))

        assert result.id == 1
        assert result.equipo_id == "PC-001"
        assert result.imagenes_guardadas == 0
        assert result.message == "Registro creado exitosamente"
        row = mock_db_session.add.call_args[0][0]
        assert row.imagenes == []

    @pytest.mark.asyncio
    async def test_create_with_png(self, mock_db_session, required_payload, png_data_uri):
        self._assign_id_on_flush(mock_db_session)
        payload = ComputadorPayload(**required_payload, imagenes=[{"base64": png_data_uri}])

        result = await self.service.create(mock_db_session, payload)

        assert result.imagenes_guardadas == 1
        stored = mock_db_session.add.call_args[0][0].imagenes
        assert stored[0]["filename"].endswith(".png")
        assert stored[0]["storage"] == "local"
        assert self.store.exists(stored[0]["filename"])

    @pytest.mark.asyncio
    async def test_create_missing_fields_touches_nothing(self, mock_db_session):
        with pytest.raises(MissingFieldsError):
            await self.service.create(mock_db_session, ComputadorPayload(equipo_id="PC-001"))
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_duplicate_is_conflict_and_cleans_images(
        self, mock_db_session, required_payload, png_data_uri
    ):
        mock_db_session.flush = AsyncMock(side_effect=db_error("23505"))
        payload = ComputadorPayload(**required_payload, imagenes=[{"base64": png_data_uri}])

        with pytest.raises(ConflictError):
            await self.service.create(mock_db_session, payload)

        written = mock_db_session.add.call_args[0][0].imagenes
        assert not self.store.exists(written[0]["filename"])

    # ── read ──────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_get_one_not_found(self, mock_db_session):
        mock_db_session.execute.return_value = result_with(row=None)

        with pytest.raises(NotFoundError):
            await self.service.get_one(mock_db_session, 99)

    @pytest.mark.asyncio
    async def test_get_one_hides_missing_local_images(self, mock_db_session, make_computador, png_bytes):
        stored = await self.store.save(png_bytes, "PC-001", 1, "png")
        row = make_computador(imagenes=[
            {"title": "ok", "filename": stored.filename, "url": stored.url, "size": 67,
             "fecha_subida": "2024-06-10T09:05:07Z", "storage": "local"},
            {"title": "gone", "filename": "PC001/gone.png", "url": "/uploads/PC001/gone.png"},
        ])
        mock_db_session.execute.return_value = result_with(row=row)

        result = await self.service.get_one(mock_db_session, 1)

        assert result.equipo_id == "PC-001"
        assert [img.title for img in result.imagenes] == ["ok"]

    @pytest.mark.asyncio
    async def test_list_applies_filters_and_order(self, mock_db_session, make_computador):
        mock_db_session.execute.return_value = result_with(rows=[make_computador()])

        result = await self.service.list(
            mock_db_session, ComputadorFiltros(estado="mantenimiento", responsable="an")
        )

        assert len(result) == 1
        query = mock_db_session.execute.call_args[0][0]
        sql = str(query.compile(dialect=postgresql.dialect()))
        assert "computadores.estado = " in sql
        assert "computadores.responsable ILIKE" in sql
        assert "ORDER BY computadores.fecha_revision DESC" in sql

    @pytest.mark.asyncio
    async def test_list_database_error(self, mock_db_session):
        mock_db_session.execute.side_effect = db_error("08006", "connection failure")
        with pytest.raises(DatabaseError):
            await self.service.list(mock_db_session)

    # ── update ────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_update_replaces_fields_and_removes_omitted_images(
        self, mock_db_session, make_computador, required_payload, png_bytes, png_data_uri
    ):
        kept = await self.store.save(png_bytes, "PC-001", 1, "png")
        dropped = await self.store.save(png_bytes, "PC-001", 5, "png")
        row = make_computador(imagenes=[
            {"title": "kept", "filename": kept.filename, "url": kept.url, "storage": "local"},
            {"title": "dropped", "filename": dropped.filename, "url": dropped.url, "storage": "local"},
        ])
        mock_db_session.execute.return_value = result_with(row=row)
        required_payload["estado"] = "mantenimiento"
        payload = ComputadorPayload(
            **required_payload,
            imagenes=[
                {"title": "kept", "filename": kept.filename, "url": kept.url, "storage": "local"},
                {"title": "nueva", "base64": png_data_uri},
            ],
        )

        result = await self.service.update(mock_db_session, 1, payload)

        assert result.imagenes_guardadas == 2
        assert result.imagenes_nuevas == 1
        assert row.estado == "mantenimiento"
        assert [img["title"] for img in row.imagenes] == ["kept", "nueva"]
        assert self.store.exists(kept.filename)
        assert not self.store.exists(dropped.filename)

    @pytest.mark.asyncio
    async def test_update_not_found(self, mock_db_session, required_payload):
        mock_db_session.execute.return_value = result_with(row=None)
        with pytest.raises(NotFoundError):
            await self.service.update(mock_db_session, 42, ComputadorPayload(**required_payload))

    @pytest.mark.asyncio
    async def test_update_check_violation(self, mock_db_session, make_computador, required_payload):
        mock_db_session.execute.return_value = result_with(row=make_computador())
        mock_db_session.flush = AsyncMock(side_effect=db_error("23514"))

        with pytest.raises(ValidationError):
            await self.service.update(mock_db_session, 1, ComputadorPayload(**required_payload))

    @pytest.mark.asyncio
    async def test_update_commit_failure_keeps_replaced_images(
        self, mock_db_session, make_computador, required_payload, png_bytes, png_data_uri
    ):
        previous = await self.store.save(png_bytes, "PC-001", 7, "png")
        row = make_computador(imagenes=[
            {"title": "previa", "filename": previous.filename, "url": previous.url},
        ])
        mock_db_session.execute.return_value = result_with(row=row)
        mock_db_session.commit = AsyncMock(side_effect=db_error("40001", "could not serialize access"))
        payload = ComputadorPayload(
            **required_payload, imagenes=[{"title": "nueva", "base64": png_data_uri}]
        )

        with pytest.raises(DatabaseError):
            await self.service.update(mock_db_session, 1, payload)

        assert self.store.exists(previous.filename)
        assert not self.store.exists(row.imagenes[0]["filename"])

    @pytest.mark.asyncio
    async def test_update_commits_before_removing_images(
        self, mock_db_session, make_computador, required_payload, png_bytes
    ):
        previous = await self.store.save(png_bytes, "PC-001", 8, "png")
        row = make_computador(imagenes=[{"filename": previous.filename}])
        mock_db_session.execute.return_value = result_with(row=row)

        async def commit():
            assert self.store.exists(previous.filename)
        mock_db_session.commit = AsyncMock(side_effect=commit)

        await self.service.update(mock_db_session, 1, ComputadorPayload(**required_payload))

        mock_db_session.commit.assert_awaited_once()
        assert not self.store.exists(previous.filename)

    # ── delete ────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_delete_removes_row_and_files(self, mock_db_session, make_computador, png_bytes):
        stored = await self.store.save(png_bytes, "PC-001", 1, "png")
        row = make_computador(imagenes=[{"filename": stored.filename, "storage": "local"}])
        mock_db_session.execute.return_value = result_with(row=row)

        result = await self.service.delete(mock_db_session, 1)

        assert result.message == "Registro eliminado exitosamente"
        mock_db_session.delete.assert_awaited_once_with(row)
        assert not self.store.exists(stored.filename)

    @pytest.mark.asyncio
    async def test_delete_commit_failure_keeps_files(self, mock_db_session, make_computador, png_bytes):
        stored = await self.store.save(png_bytes, "PC-001", 1, "png")
        row = make_computador(imagenes=[{"filename": stored.filename}])
        mock_db_session.execute.return_value = result_with(row=row)
        mock_db_session.commit = AsyncMock(side_effect=db_error("08006", "connection failure"))

        with pytest.raises(DatabaseError):
            await self.service.delete(mock_db_session, 1)

        assert self.store.exists(stored.filename)

    @pytest.mark.asyncio
    async def test_delete_unknown_id(self, mock_db_session):
        mock_db_session.execute.return_value = result_with(row=None)
        with pytest.raises(NotFoundError):
            await self.service.delete(mock_db_session, 404)
        mock_db_session.delete.assert_not_awaited()

    # ── reports ───────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_statistics_empty_table(self, mock_db_session):
        mock_db_session.execute.return_value = result_with(rows=[])
        stats = await self.service.statistics(mock_db_session)
        assert stats.total == 0 and stats.total_equipos == 0

    @pytest.mark.asyncio
    async def test_export_flat(self, mock_db_session, make_computador):
        mock_db_session.execute.return_value = result_with(
            rows=[make_computador(), make_computador(id=2, equipo_id="PC-002")]
        )
        rows = await self.service.export_flat(mock_db_session)
        assert [r["ID EQUIPO"] for r in rows] == ["PC-001", "PC-002"]
