"""
rental_batch -- Scheduled jobs for the lease payment engine.

Runs the monthly rent invoice generation and the daily reminder and
escalation sweep through a batch executor with per-lease SAVEPOINT
isolation, persisted job and item records, and an audit trail.

Architecture:
    rental_batch/ is a top-level package.  Nothing in rental_kernel/ or
    rental_modules/ imports from rental_batch.

Invariants:
    SAVEPOINT isolation per lease
    Job idempotency (UNIQUE idempotency_key)
    Clock injection (no datetime.now() calls)
    Audit trail for job start and completion
"""
