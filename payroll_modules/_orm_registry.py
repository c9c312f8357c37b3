"""
Module ORM Registry (``payroll_modules._orm_registry``).

Imports every ``payroll_modules.*.orm`` module so that ``Base.metadata``
holds the full schema before ``create_tables()`` runs.  Tests and scripts
reach it through ``payroll_kernel.db.engine.create_tables``.
"""


def import_all_orm_models() -> None:
    """Register all module ORM models.  Idempotent."""
    # Order follows foreign keys: staff first, adjustments last.
    import payroll_modules.staff.orm  # noqa: F401
    import payroll_modules.payroll.orm  # noqa: F401
    import payroll_modules.leave.orm  # noqa: F401
    import payroll_modules.loans.orm  # noqa: F401
    import payroll_modules.adjustments.orm  # noqa: F401
