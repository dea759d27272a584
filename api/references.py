"""
Payment Reference Lifecycle
Issues one-time payment references, tracks their expiry and burns them
when an image generation is paid for.

A reference lives for 10 minutes. Confirming a payment only reads it;
the generation endpoint consumes it exactly once.
"""

import re
import time
import uuid
import logging
import threading
from enum import Enum
from typing import Callable, Optional, Protocol
from dataclasses import dataclass

logger = logging.getLogger("travel_api.references")

# References expire 10 minutes after issuance
REFERENCE_TTL_SECONDS = 10 * 60

# uuid4().hex: 32 lowercase hex characters
REFERENCE_PATTERN = re.compile(r"^[0-9a-f]{32}$")


class FailureReason(str, Enum):
    UNKNOWN_OR_EXPIRED_REFERENCE = "unknown_or_expired_reference"
    SERVER_CONFIGURATION_ERROR = "server_configuration_error"
    PORTAL_QUERY_FAILED = "portal_query_failed"
    MISSING_TRANSACTION_ID = "missing_transaction_id"
    VALIDATION_FAILED = "validation_failed"
    PAYMENT_REQUIRED = "payment_required"
    INVALID_REFERENCE_FORMAT = "invalid_reference_format"
    INVALID_EXPIRED_OR_USED_REFERENCE = "invalid_expired_or_used_reference"


@dataclass
class PaymentReference:
    """A server-issued payment intent"""
    id: str
    created_at: float
    used: bool = False


class ReferenceStore(Protocol):
    """Storage contract for payment references.

    Implementations must make ``consume`` atomic per reference id: of two
    concurrent calls for the same id, exactly one may return True.
    """

    def add(self, reference_id: str) -> None:
        ...

    def has(self, reference_id: str) -> bool:
        ...

    def mark_used(self, reference_id: str) -> None:
        ...

    def consume(self, reference_id: str) -> bool:
        ...

    def sweep_expired(self) -> int:
        ...


class InMemoryReferenceStore:
    """Process-local reference store.

    Best-effort only: contents are lost on restart and are not shared
    between instances.
    """

    def __init__(self, ttl_seconds: float = REFERENCE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._references: dict[str, PaymentReference] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._references)

    def _is_expired(self, reference: PaymentReference, now: float) -> bool:
        return now - reference.created_at > self.ttl_seconds

    def _lookup_valid(self, reference_id: str) -> Optional[PaymentReference]:
        # Caller holds the lock
        reference = self._references.get(reference_id)
        if reference is None:
            return None
        if self._is_expired(reference, self.clock()):
            del self._references[reference_id]
            logger.info(f"Payment reference expired: {reference_id}")
            return None
        if reference.used:
            return None
        return reference

    def get(self, reference_id: str) -> Optional[PaymentReference]:
        """Raw record lookup, no expiry handling"""
        with self._lock:
            return self._references.get(reference_id)

    def add(self, reference_id: str) -> None:
        with self._lock:
            self._references[reference_id] = PaymentReference(
                id=reference_id,
                created_at=self.clock(),
                used=False,
            )
        logger.info(f"Added payment reference: {reference_id}")

    def has(self, reference_id: str) -> bool:
        """True iff the reference exists, is unexpired and unused.

        An expired record is evicted as a side effect.
        """
        with self._lock:
            return self._lookup_valid(reference_id) is not None

    def mark_used(self, reference_id: str) -> None:
        with self._lock:
            reference = self._references.get(reference_id)
            if reference is None:
                return
            reference.used = True
        logger.info(f"Marked payment reference as used: {reference_id}")

    def consume(self, reference_id: str) -> bool:
        """Check-and-mark in one step."""
        with self._lock:
            reference = self._lookup_valid(reference_id)
            if reference is None:
                return False
            reference.used = True
        logger.info(f"Marked payment reference as used: {reference_id}")
        return True

    def sweep_expired(self) -> int:
        with self._lock:
            now = self.clock()
            expired = [
                reference_id
                for reference_id, reference in self._references.items()
                if self._is_expired(reference, now)
            ]
            for reference_id in expired:
                del self._references[reference_id]
        for reference_id in expired:
            logger.info(f"Cleaned up expired payment reference: {reference_id}")
        return len(expired)


@dataclass
class ConsumptionResult:
    """Outcome of burning a reference for a generation"""
    success: bool
    reason: Optional[FailureReason] = None
    error: Optional[str] = None

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        if self.reason == FailureReason.INVALID_REFERENCE_FORMAT:
            return 400
        return 402


def sweep_expired(store: ReferenceStore) -> int:
    """Drop every reference older than the TTL."""
    removed = store.sweep_expired()
    if removed:
        logger.info(f"Swept {removed} expired payment reference(s)")
    return removed


def is_valid_reference_format(reference: str) -> bool:
    return bool(reference) and REFERENCE_PATTERN.match(reference) is not None


def issue_reference(store: ReferenceStore) -> str:
    """Mint a fresh reference and record it in the store."""
    sweep_expired(store)
    reference_id = uuid.uuid4().hex
    store.add(reference_id)
    return reference_id


def check_reference(reference: Optional[str]) -> Optional[ConsumptionResult]:
    """Presence and format checks; returns a failure, or None if they pass."""
    if not reference:
        return ConsumptionResult(
            success=False,
            reason=FailureReason.PAYMENT_REQUIRED,
            error="Payment required. Please complete payment before generating image.",
        )

    if not isinstance(reference, str) or not is_valid_reference_format(reference):
        return ConsumptionResult(
            success=False,
            reason=FailureReason.INVALID_REFERENCE_FORMAT,
            error="Invalid payment reference format.",
        )

    return None


def consume_for_generation(reference: Optional[str], store: ReferenceStore) -> ConsumptionResult:
    """
    Burn a reference so it pays for exactly one generation.

    The reference is marked used before any generation work starts, so a
    failed generation still costs the payment. Malformed references are
    rejected without touching the store.

    Args:
        reference: The payment reference sent by the client
        store: Reference store holding issued references

    Returns:
        ConsumptionResult, successful iff this call consumed the reference
    """
    failure = check_reference(reference)
    if failure is not None:
        return failure

    sweep_expired(store)

    if not store.consume(reference):
        return ConsumptionResult(
            success=False,
            reason=FailureReason.INVALID_EXPIRED_OR_USED_REFERENCE,
            error="Invalid, expired, or already used payment reference. Please complete payment again.",
        )

    logger.info(f"Payment reference {reference} consumed for image generation")
    return ConsumptionResult(success=True)
