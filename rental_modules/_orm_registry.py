"""
Module ORM Registry (``rental_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table before tables are created.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from ``rental_kernel``, the
``rental_modules`` packages and ``rental_batch``.  MUST NOT be imported
by ``rental_kernel``.

Usage
-----
``scripts/run_daily_jobs.py`` and ``tests/conftest.py`` both call
``import_all_orm_models()`` / ``create_all_tables()``.
"""


def import_all_orm_models() -> None:
    """Import kernel and module ORM models (idempotent)."""
    # fmt: off
    import rental_kernel.models  # noqa: F401
    import rental_kernel.services.sequence_service  # noqa: F401  # counter table
    import rental_modules.lease.orm  # noqa: F401
    import rental_modules.distribution.orm  # noqa: F401
    import rental_batch.models  # noqa: F401  # Batch run tables
    # fmt: on


def create_all_tables() -> None:
    """Create every table.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from rental_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables()
