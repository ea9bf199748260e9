"""
Idempotency key generation.

Posting keys decide whether an event has already produced a ledger
transaction; side-effect keys decide whether one step of its inventory plan
has already been applied.
"""

from datetime import datetime
from uuid import UUID

from farm_ledger.utils.hashing import canonicalize_json, sha256_hex


def generate_idempotency_key(
    tenant_id: str,
    event_id: UUID | str,
    payload: dict | None,
    posting_profile_version: int = 1,
) -> str:
    """
    Deterministic posting key for an event.

    SHA-256 over ``"{tenant}:{event}:{version}:{canonical payload}"``.  The same
    event with the same payload and profile version always yields the same
    key; bumping ``posting_profile_version`` yields a new one.

    Returns:
        64-character hex digest.
    """
    data = (
        f"{tenant_id}:{event_id}:{posting_profile_version}:"
        f"{canonicalize_json(payload or {})}"
    )
    return sha256_hex(data)


def side_effect_key(event_id: UUID | str, step: int) -> str:
    """Key for step ``step`` of an event's inventory side-effect plan."""
    return f"{event_id}:{step}"


def reversal_key(transaction_id: UUID | str, at: datetime) -> str:
    """
    Key for a reversal of ``transaction_id`` made at ``at``.

    Reversals are not deduplicated; the timestamp makes each call unique.
    """
    return f"reversal-{transaction_id}-{int(at.timestamp() * 1000)}"
