"""
Soporte API — Application Package Initializer
===============================================

What: Marks the `soporte` directory as a Python package.
Why:  Enables module imports like `from soporte.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend keeps a thin layered architecture:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, readiness gate
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Validation, attachments, queries
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │  Database + Image stores (I/O)      │  ← asyncpg, local disk, Supabase Storage
    └─────────────────────────────────────┘

    Images follow one of three storage modes (local, remote, hybrid) chosen
    by configuration; the rest of the stack does not care which one is active.
"""

__version__ = "2.0.0"
