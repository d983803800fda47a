"""
Soporte API — Deployment Diagnostics
======================================

Usage:
    python -m soporte.diagnostics [--create-bucket]

Checks, in order:
    1. Which Supabase / database variables are configured
    2. Whether each Supabase key has the shape of a JWT
    3. Bucket listing; presence and visibility of STORAGE_BUCKET
       (created when --create-bucket is given)
    4. Whether table `computadores` exists, and its row count

Exit status is 1 when SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is missing,
0 otherwise (individual check failures are reported, not fatal).
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from sqlalchemy.exc import DBAPIError

from soporte.bootstrap import TABLE_NAME, count_rows
from soporte.config import Settings, settings
from soporte.database import dispose_engine, engine
from soporte.exceptions import ObjectStorageError, TableMissingError
from soporte.services.image_store import SupabaseImageStore

RULE = "═" * 60


def jwt_shape_problems(key: str) -> List[str]:
    """Reasons a Supabase API key does not look like a JWT (empty if fine)."""
    problems = []
    if not key.startswith("eyJ"):
        problems.append("no empieza con 'eyJ'")
    if len(key.split(".")) != 3:
        problems.append("no tiene 3 partes separadas por '.'")
    return problems


def report_environment(cfg: Settings) -> bool:
    """Print configured variables; False when the run cannot continue."""
    print("1) VARIABLES DE ENTORNO:")
    for name, value in [
        ("SUPABASE_URL", cfg.supabase_url),
        ("SUPABASE_ANON_KEY", cfg.supabase_anon_key),
        ("SUPABASE_SERVICE_ROLE_KEY", cfg.supabase_service_role_key),
        ("DATABASE_URL", cfg.database_url),
    ]:
        print(f"   {name}: {'configurada' if value else 'NO configurada'}")
    print(f"   STORAGE_MODE: {cfg.storage_mode}")

    print("\n2) FORMATO DE CLAVES:")
    for name, key in [
        ("SUPABASE_ANON_KEY", cfg.supabase_anon_key),
        ("SUPABASE_SERVICE_ROLE_KEY", cfg.supabase_service_role_key),
    ]:
        if not key:
            continue
        problems = jwt_shape_problems(key)
        if problems:
            print(f"   {name} ({len(key)} caracteres): {', '.join(problems)}")
        else:
            print(f"   {name} ({len(key)} caracteres): formato JWT correcto")

    ok = True
    if not cfg.supabase_url:
        print("\nERROR: SUPABASE_URL no está configurada (Project Settings → API).")
        ok = False
    if not cfg.supabase_service_role_key:
        print("\nERROR: SUPABASE_SERVICE_ROLE_KEY no está configurada.")
        ok = False
    return ok


async def report_bucket(store: SupabaseImageStore, create: bool) -> None:
    print("\n3) SUPABASE STORAGE:")
    try:
        buckets = await store.list_buckets()
    except ObjectStorageError as e:
        print(f"   Error listando buckets: {e.message} {e.context}")
        return

    print(f"   Total buckets: {len(buckets)}")
    for i, bucket in enumerate(buckets, start=1):
        visibility = "público" if bucket.get("public") else "privado"
        print(f"      {i}. {bucket.get('name')} ({visibility})")

    found = next((b for b in buckets if b.get("name") == store.bucket), None)
    if found is not None:
        print(f"   Bucket '{store.bucket}' encontrado (público: {'sí' if found.get('public') else 'NO'})")
        return

    print(f"   Bucket '{store.bucket}' NO encontrado")
    if not create:
        print("   Ejecuta de nuevo con --create-bucket para crearlo")
        return
    try:
        await store.create_bucket(public=True)
        print(f"   Bucket '{store.bucket}' creado (público)")
    except ObjectStorageError as e:
        print(f"   Error creando bucket: {e.message} {e.context}")


async def report_table() -> None:
    print("\n4) TABLA:")
    try:
        total = await count_rows(engine)
        print(f"   Tabla '{TABLE_NAME}' existe; registros: {total}")
    except TableMissingError:
        print(f"   Tabla '{TABLE_NAME}' NO existe. Ejecuta: alembic upgrade head")
    except (DBAPIError, OSError) as e:
        print(f"   Error accediendo a la base de datos: {e}")
    finally:
        await dispose_engine()


async def run(cfg: Settings, create_bucket: bool) -> int:
    print("DIAGNÓSTICO DE CONFIGURACIÓN")
    print(RULE)

    if not report_environment(cfg):
        return 1

    store = SupabaseImageStore(
        base_url=cfg.supabase_url,
        api_key=cfg.supabase_service_role_key,
        bucket=cfg.storage_bucket,
        timeout=cfg.storage_timeout,
    )
    await report_bucket(store, create_bucket)

    await report_table()
    print(RULE)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m soporte.diagnostics",
        description="Check Supabase credentials, the image bucket and the computadores table.",
    )
    parser.add_argument(
        "--create-bucket",
        action="store_true",
        help="Create the image bucket (public) when it does not exist",
    )
    args = parser.parse_args(argv)
    return asyncio.run(run(settings, args.create_bucket))


if __name__ == "__main__":
    sys.exit(main())
