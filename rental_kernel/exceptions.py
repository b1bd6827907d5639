"""
Typed Exception Hierarchy for the Rental Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the lease payment engine are API handlers and scheduled-job
runners.  Each needs to react to a failure class, not to a message string:

  - A ``ConfigMissingError`` is user-actionable: the UI must prompt the
    manager to configure distribution recipients.
  - A ``NotFoundError`` is terminal for the operation.
  - A ``DuplicateOperationError`` is a no-op success for re-runnable jobs.
  - A ``TransientStorageError`` is logged and skipped; the next scheduled
    run self-heals.

Every exception has:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (lease_id, payment_id, space_id, ...)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RentalKernelError:

    RentalKernelError (base)
    |
    +-- ValidationError
    |   +-- CautionValidationError
    |   +-- DistributionConfigValidationError
    |   +-- PaymentNotSettledError
    |   +-- RecipientNotApplicableError
    |
    +-- NotFoundError
    |   +-- LeaseNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- DistributionNotFoundError
    |
    +-- ConfigMissingError
    |
    +-- DuplicateOperationError
    |   +-- InvoiceAlreadyExistsError
    |   +-- DistributionAlreadyExistsError
    |   +-- ReminderAlreadySentError
    |   +-- PaymentAlreadySettledError
    |   +-- PaymentInProgressError
    |   +-- RecipientAlreadySettledError
    |
    +-- LifecycleError
    |   +-- InvalidLeaseTransitionError
    |   +-- TransitionGuardError
    |   +-- LeaseStateError
    |
    +-- TransientStorageError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- BatchError
        +-- BatchIdempotencyError
        +-- TaskNotRegisteredError
        +-- BatchJobNotFoundError
        +-- BatchAlreadyRunningError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                         | When Raised
----------------|------------------------------|-----------------------------------------
Validation      | INVALID_CAUTION_TERMS        | Non-positive rent, month count out of enum
                | INVALID_DISTRIBUTION_CONFIG  | Percentages not 0-100 or not summing to 100
                | PAYMENT_NOT_SETTLED          | Distribution requested for unsettled payment
                | RECIPIENT_NOT_APPLICABLE     | Transfer marked on a not_applicable recipient
----------------|------------------------------|-----------------------------------------
Not found       | LEASE_NOT_FOUND              | Lease ID doesn't exist
                | PAYMENT_NOT_FOUND            | Payment ID doesn't exist
                | DISTRIBUTION_NOT_FOUND       | Distribution ID doesn't exist
----------------|------------------------------|-----------------------------------------
Config          | CONFIG_MISSING               | Space has no distribution recipients
----------------|------------------------------|-----------------------------------------
Duplicate       | INVOICE_ALREADY_EXISTS       | Second invoice for (lease, period)
                | DISTRIBUTION_ALREADY_EXISTS  | Second distribution for a payment
                | REMINDER_ALREADY_SENT        | Second reminder for (lease, type, day)
                | PAYMENT_ALREADY_SETTLED      | Payment for a settled period re-initiated
                | PAYMENT_IN_PROGRESS          | Payment re-initiated while collecting
                | RECIPIENT_ALREADY_SETTLED    | Transfer re-marked with a different id
----------------|------------------------------|-----------------------------------------
Lifecycle       | INVALID_LEASE_TRANSITION     | Edge not in the lease state machine
                | TRANSITION_GUARD_FAILED      | Edge guard not met (e.g. advance not over)
                | LEASE_STATE_INVALID          | Operation unavailable in current status
----------------|------------------------------|-----------------------------------------
Storage         | TRANSIENT_STORAGE_ERROR      | Write failure isolated to one batch item
----------------|------------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN           | Hash chain validation failed
----------------|------------------------------|-----------------------------------------
Batch           | BATCH_IDEMPOTENCY_CONFLICT   | Job idempotency key already used
                | TASK_NOT_REGISTERED          | Unknown task_type
                | BATCH_JOB_NOT_FOUND          | Batch job ID doesn't exist
                | BATCH_ALREADY_RUNNING        | Job executed twice

===============================================================================
HANDLING PATTERNS
===============================================================================

1. DUPLICATES ARE SUCCESS:

    try:
        payment = generate_invoice(lease, period)
    except InvoiceAlreadyExistsError as e:
        # Already invoiced on an earlier run -- nothing to do
        return skipped(e.lease_id)

2. CONFIGURATION IS ACTIONABLE:

    except ConfigMissingError as e:
        return {"error": e.code, "space_id": e.space_id, "message": str(e)}

3. TRANSIENT ERRORS STAY IN LOGS:

    except TransientStorageError as e:
        log.warning("item_failed", extra={"item_key": e.item_key})
        # batch continues
"""


class RentalKernelError(Exception):
    """
    Base exception for all rental kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RENTAL_KERNEL_ERROR"


# Validation exceptions


class ValidationError(RentalKernelError):
    """Malformed input to a calculator or store. Never retried automatically."""

    code: str = "VALIDATION_ERROR"


class CautionValidationError(ValidationError):
    """Caution terms are outside the allowed ranges."""

    code: str = "INVALID_CAUTION_TERMS"

    def __init__(self, field: str, value: object, allowed: str):
        self.field = field
        self.value = value
        self.allowed = allowed
        super().__init__(
            f"Invalid {field}: {value!r} (expected {allowed})"
        )


class DistributionConfigValidationError(ValidationError):
    """A distribution configuration failed validation before persisting."""

    code: str = "INVALID_DISTRIBUTION_CONFIG"

    def __init__(self, space_id: str, errors: tuple[str, ...]):
        self.space_id = space_id
        self.errors = errors
        super().__init__(
            f"Invalid distribution configuration for space {space_id}: "
            + "; ".join(errors)
        )


class PaymentNotSettledError(ValidationError):
    """Only settled payments can be distributed."""

    code: str = "PAYMENT_NOT_SETTLED"

    def __init__(self, payment_id: str, status: str):
        self.payment_id = payment_id
        self.status = status
        super().__init__(
            f"Payment {payment_id} is {status}; only settled payments "
            f"can be distributed"
        )


class RecipientNotApplicableError(ValidationError):
    """A transfer was recorded for a recipient that receives nothing."""

    code: str = "RECIPIENT_NOT_APPLICABLE"

    def __init__(self, distribution_id: str, recipient: str):
        self.distribution_id = distribution_id
        self.recipient = recipient
        super().__init__(
            f"Recipient {recipient} is not applicable on distribution "
            f"{distribution_id}"
        )


# Not-found exceptions


class NotFoundError(RentalKernelError):
    """Referenced record does not exist. Terminal for the operation."""

    code: str = "NOT_FOUND"


class LeaseNotFoundError(NotFoundError):
    """Lease with given ID was not found."""

    code: str = "LEASE_NOT_FOUND"

    def __init__(self, lease_id: str):
        self.lease_id = lease_id
        super().__init__(f"Lease not found: {lease_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class DistributionNotFoundError(NotFoundError):
    """Payment distribution with given ID was not found."""

    code: str = "DISTRIBUTION_NOT_FOUND"

    def __init__(self, distribution_id: str):
        self.distribution_id = distribution_id
        super().__init__(f"Payment distribution not found: {distribution_id}")


# Configuration exceptions


class ConfigMissingError(RentalKernelError):
    """
    The management space has no distribution configuration.

    Recoverable: a manager must configure the owner/manager/broker
    recipients before the payment can be distributed.
    """

    code: str = "CONFIG_MISSING"

    def __init__(self, space_id: str):
        self.space_id = space_id
        super().__init__(
            f"No distribution configuration for space {space_id}. "
            f"Configure the owner and manager recipient accounts before "
            f"distributing payments."
        )


# Duplicate-operation exceptions (treated as no-op success by callers)


class DuplicateOperationError(RentalKernelError):
    """The operation was already performed. Callers treat it as success."""

    code: str = "DUPLICATE_OPERATION"


class InvoiceAlreadyExistsError(DuplicateOperationError):
    """A payment already exists for this (lease, period)."""

    code: str = "INVOICE_ALREADY_EXISTS"

    def __init__(self, lease_id: str, payment_period: str):
        self.lease_id = lease_id
        self.payment_period = payment_period
        super().__init__(
            f"Lease {lease_id} already has a payment for {payment_period}"
        )


class DistributionAlreadyExistsError(DuplicateOperationError):
    """A distribution already exists for this payment."""

    code: str = "DISTRIBUTION_ALREADY_EXISTS"

    def __init__(self, payment_id: str, distribution_id: str):
        self.payment_id = payment_id
        self.distribution_id = distribution_id
        super().__init__(
            f"Payment {payment_id} already distributed as {distribution_id}"
        )


class ReminderAlreadySentError(DuplicateOperationError):
    """A reminder of this type was already sent today for this lease."""

    code: str = "REMINDER_ALREADY_SENT"

    def __init__(self, lease_id: str, reminder_type: str, reminder_date: str):
        self.lease_id = lease_id
        self.reminder_type = reminder_type
        self.reminder_date = reminder_date
        super().__init__(
            f"Reminder {reminder_type} already sent for lease {lease_id} "
            f"on {reminder_date}"
        )


class PaymentAlreadySettledError(DuplicateOperationError):
    """The payment (or its period) is already settled."""

    code: str = "PAYMENT_ALREADY_SETTLED"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} is already settled")


class RecipientAlreadySettledError(DuplicateOperationError):
    """The recipient transfer was already confirmed under another id."""

    code: str = "RECIPIENT_ALREADY_SETTLED"

    def __init__(self, distribution_id: str, recipient: str, transfer_id: str | None):
        self.distribution_id = distribution_id
        self.recipient = recipient
        self.transfer_id = transfer_id
        super().__init__(
            f"Recipient {recipient} of distribution {distribution_id} is "
            f"already settled (transfer {transfer_id})"
        )

class PaymentInProgressError(DuplicateOperationError):
    """A gateway collection for this payment is already under way."""

    code: str = "PAYMENT_IN_PROGRESS"

    def __init__(self, payment_id: str, transaction_id: str | None):
        self.payment_id = payment_id
        self.transaction_id = transaction_id
        super().__init__(
            f"Payment {payment_id} is already in progress "
            f"(transaction {transaction_id})"
        )


# Lifecycle exceptions


class LifecycleError(RentalKernelError):
    """Base exception for lease state machine errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidLeaseTransitionError(LifecycleError):
    """The requested status change is not an edge of the lease lifecycle."""

    code: str = "INVALID_LEASE_TRANSITION"

    def __init__(self, lease_id: str, from_status: str, to_status: str):
        self.lease_id = lease_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Lease {lease_id} cannot move from {from_status} to {to_status}"
        )


class TransitionGuardError(LifecycleError):
    """The edge exists but its guard condition is not satisfied."""

    code: str = "TRANSITION_GUARD_FAILED"

    def __init__(self, lease_id: str, guard: str, reason: str):
        self.lease_id = lease_id
        self.guard = guard
        self.reason = reason
        super().__init__(f"Lease {lease_id} guard {guard} not satisfied: {reason}")


class LeaseStateError(LifecycleError):
    """The operation is not available in the lease's current status."""

    code: str = "LEASE_STATE_INVALID"

    def __init__(self, lease_id: str, status: str, operation: str):
        self.lease_id = lease_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} lease {lease_id} while it is {status}"
        )


# Storage exceptions


class TransientStorageError(RentalKernelError):
    """
    A storage write failed for one batch item.

    Isolated per lease/payment: logged, reported in the job summary,
    never surfaced to end users.  The next scheduled run retries.
    """

    code: str = "TRANSIENT_STORAGE_ERROR"

    def __init__(self, operation: str, item_key: str, reason: str):
        self.operation = operation
        self.item_key = item_key
        self.reason = reason
        super().__init__(
            f"Storage failure during {operation} for {item_key}: {reason}"
        )


# Audit exceptions


class AuditError(RentalKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Batch exceptions


class BatchError(RentalKernelError):
    """Base exception for batch execution errors."""

    code: str = "BATCH_ERROR"


class BatchIdempotencyError(BatchError):
    """A batch job with this idempotency key already exists."""

    code: str = "BATCH_IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, existing_job_id: str):
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id
        super().__init__(
            f"Batch job with key {idempotency_key} already exists: "
            f"{existing_job_id}"
        )


class TaskNotRegisteredError(BatchError):
    """No batch task is registered for the requested task type."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str, available: tuple[str, ...]):
        self.task_type = task_type
        self.available = available
        super().__init__(
            f"No task registered for type '{task_type}'. "
            f"Available: {list(available)}"
        )


class BatchJobNotFoundError(BatchError):
    """The requested batch job does not exist."""

    code: str = "BATCH_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Batch job not found: {job_id}")


class BatchAlreadyRunningError(BatchError):
    """The batch job was already started or has finished."""

    code: str = "BATCH_ALREADY_RUNNING"

    def __init__(self, job_name: str, job_id: str, status: str):
        self.job_name = job_name
        self.job_id = job_id
        self.status = status
        super().__init__(
            f"Batch job {job_name} ({job_id}) cannot start from status {status}"
        )
