"""
Typed Exception Hierarchy for the Farm Ledger posting engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The posting engine records every failure onto the Event it was processing
and then re-raises the original exception to the caller.  Callers (API
handlers, queue consumers) must be able to tell a configuration problem
(missing account) from a lock conflict or a defect in a GL rule without
parsing message strings.  So:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FarmLedgerError (base)
    |
    +-- EventError
    |   +-- EventNotFoundError
    |   +-- InvalidEventStateError
    |   +-- EventLockLostError
    |   +-- InvalidPayloadError
    |
    +-- PostingError
    |   +-- UnknownEventTypeError
    |   +-- NoGLLinesComputedError
    |   +-- RequiredAccountsNotFoundError
    |   +-- UnbalancedTransactionError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- DuplicateAccountCodeError
    |   +-- SystemAccountProtectedError
    |
    +-- ReversalError
    |   +-- TransactionNotFoundError
    |   +-- AlreadyReversedError
    |
    +-- InventoryError
    |   +-- InventoryItemNotFoundError
    |   +-- AnimalGroupNotFoundError
    |
    +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                        | When Raised
-----------|-----------------------------|----------------------------------------
Event      | EVENT_NOT_FOUND             | Event ID doesn't exist for the tenant
           | INVALID_EVENT_STATE         | Event not lockable and not POSTED
           | EVENT_LOCK_LOST             | Finalize attempted without holding lock
           | INVALID_PAYLOAD             | Payload field has the wrong shape
-----------|-----------------------------|----------------------------------------
Posting    | UNKNOWN_EVENT_TYPE          | No GL rule for the event type
           | NO_GL_LINES_COMPUTED        | GL rule produced zero lines
           | REQUIRED_ACCOUNTS_NOT_FOUND | Account code not configured for tenant
           | UNBALANCED_TRANSACTION      | |debits - credits| > 0.001
-----------|-----------------------------|----------------------------------------
Account    | ACCOUNT_NOT_FOUND           | Code not in the tenant chart
           | DUPLICATE_ACCOUNT_CODE      | Code already used by the tenant
           | SYSTEM_ACCOUNT_PROTECTED    | Deactivating a seeded system account
-----------|-----------------------------|----------------------------------------
Reversal   | TRANSACTION_NOT_FOUND       | Missing id or another tenant's txn
           | ALREADY_REVERSED            | Transaction was already reversed
-----------|-----------------------------|----------------------------------------
Inventory  | INVENTORY_ITEM_NOT_FOUND    | Item id not in the tenant catalogue
           | ANIMAL_GROUP_NOT_FOUND      | Livestock group id not found
-----------|-----------------------------|----------------------------------------
Other      | IMMUTABILITY_VIOLATION      | Modifying an immutable ledger row
           | CONFIGURATION_ERROR         | Invalid configuration value

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ALREADY POSTED IS SUCCESS, NOT AN EXCEPTION:

    result = engine.process_event(tenant_id, event_id, locker_id)
    if result.already_posted:
        ...  # idempotent success

2. CONFIGURATION ERRORS ARE RETRYABLE AFTER A FIX:

    except RequiredAccountsNotFoundError as e:
        accounts.seed_chart_of_accounts(tenant_id)
        engine.process_event(tenant_id, event_id, locker_id)  # FAILED -> retry

3. UNBALANCED TRANSACTIONS ARE BUGS:

    except UnbalancedTransactionError as e:
        alert(e.code, debits=e.debits, credits=e.credits)
"""


class FarmLedgerError(Exception):
    """
    Base exception for all farm ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FARM_LEDGER_ERROR"


# Event-related exceptions


class EventError(FarmLedgerError):
    """Base exception for event-related errors."""

    code: str = "EVENT_ERROR"


class EventNotFoundError(EventError):
    """Event with given ID was not found for the tenant."""

    code: str = "EVENT_NOT_FOUND"

    def __init__(self, tenant_id: str, event_id: str):
        self.tenant_id = tenant_id
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id} (tenant {tenant_id})")


class InvalidEventStateError(EventError):
    """
    Event could not be locked and is not POSTED.

    Raised when another poster holds the lock (PROCESSING) or the event is
    FAILED while failed-event retries are disabled.
    """

    code: str = "INVALID_EVENT_STATE"

    def __init__(self, event_id: str, status: str | None):
        self.event_id = event_id
        self.status = status
        super().__init__(
            f"Event {event_id} is locked or in invalid state: {status}"
        )


class EventLockLostError(EventError):
    """The caller no longer holds the PROCESSING lock it tried to finalize."""

    code: str = "EVENT_LOCK_LOST"

    def __init__(self, event_id: str, locker_id: str):
        self.event_id = event_id
        self.locker_id = locker_id
        super().__init__(
            f"Locker {locker_id} does not hold the lock on event {event_id}"
        )


class InvalidPayloadError(EventError):
    """A payload field could not be interpreted."""

    code: str = "INVALID_PAYLOAD"

    def __init__(self, event_type: str, field: str, value: object):
        self.event_type = event_type
        self.field = field
        self.value = repr(value)
        super().__init__(
            f"Invalid value for '{field}' in {event_type} payload: {value!r}"
        )


# Posting-related exceptions


class PostingError(FarmLedgerError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class UnknownEventTypeError(PostingError):
    """No GL rule exists for the event type."""

    code: str = "UNKNOWN_EVENT_TYPE"

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Unknown event type: {event_type}")


class NoGLLinesComputedError(PostingError):
    """The GL rule for an event produced no lines."""

    code: str = "NO_GL_LINES_COMPUTED"

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"No GL lines computed for event type: {event_type}")


class RequiredAccountsNotFoundError(PostingError):
    """One or more account codes used by a GL rule are not configured."""

    code: str = "REQUIRED_ACCOUNTS_NOT_FOUND"

    def __init__(self, event_type: str, missing_codes: list[str]):
        self.event_type = event_type
        self.missing_codes = missing_codes
        super().__init__(
            f"Required accounts not found for {event_type}: "
            f"{', '.join(missing_codes)}"
        )


class UnbalancedTransactionError(PostingError):
    """Computed debits and credits differ by more than the tolerance."""

    code: str = "UNBALANCED_TRANSACTION"

    def __init__(self, debits: str, credits: str):
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Transaction does not balance: debits={debits}, credits={credits}"
        )


# Account-related exceptions


class AccountError(FarmLedgerError):
    """Base exception for chart-of-accounts errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """No account with the code exists for the tenant."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, tenant_id: str, account_code: str):
        self.tenant_id = tenant_id
        self.account_code = account_code
        super().__init__(f"Account {account_code} not found for tenant {tenant_id}")


class DuplicateAccountCodeError(AccountError):
    """Account code already exists for the tenant."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, tenant_id: str, account_code: str):
        self.tenant_id = tenant_id
        self.account_code = account_code
        super().__init__(
            f"Account code {account_code} already exists for tenant {tenant_id}"
        )


class SystemAccountProtectedError(AccountError):
    """System accounts seeded at provisioning cannot be deactivated."""

    code: str = "SYSTEM_ACCOUNT_PROTECTED"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account {account_code} is a protected system account")


# Reversal-related exceptions


class ReversalError(FarmLedgerError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class TransactionNotFoundError(ReversalError):
    """Transaction does not exist or belongs to another tenant."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class AlreadyReversedError(ReversalError):
    """Transaction has already been reversed."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, transaction_id: str, reversed_by_transaction_id: str | None):
        self.transaction_id = transaction_id
        self.reversed_by_transaction_id = reversed_by_transaction_id
        super().__init__(f"Transaction already reversed: {transaction_id}")


# Inventory-related exceptions


class InventoryError(FarmLedgerError):
    """Base exception for inventory side-effect errors."""

    code: str = "INVENTORY_ERROR"


class InventoryItemNotFoundError(InventoryError):
    """Item id is not in the tenant's catalogue."""

    code: str = "INVENTORY_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Inventory item not found: {item_id}")


class AnimalGroupNotFoundError(InventoryError):
    """Livestock group referenced by an event does not exist."""

    code: str = "ANIMAL_GROUP_NOT_FOUND"

    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(f"Animal group not found: {group_id}")


# Immutability


class ImmutabilityViolationError(FarmLedgerError):
    """Attempted to modify or delete an immutable ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Configuration


class ConfigurationError(FarmLedgerError):
    """Configuration value is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
