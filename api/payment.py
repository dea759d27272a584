"""
Payment Confirmation Service using the World Developer Portal
Verifies 0.5 WLD MiniKit payments against the portal's transaction ledger
"""

import ssl
import asyncio
import logging
from decimal import Decimal
from typing import Any, Optional
from dataclasses import dataclass, field
from urllib.parse import quote

import aiohttp
import certifi

from api import config
from api.config import ServerConfigurationError
from api.references import REFERENCE_TTL_SECONDS, FailureReason, ReferenceStore, sweep_expired

logger = logging.getLogger("travel_api.payment")

# Token decimals as used by MiniKit
TOKEN_DECIMALS = {
    "WLD": 18,
    "USDCE": 6,
}

PORTAL_TIMEOUT = aiohttp.ClientTimeout(total=30)

# Explicit failure state reported by the portal; anything else is accepted
FAILED_STATUS = "failed"


def token_to_decimals(amount: str, symbol: str) -> str:
    """Convert a human amount ("0.5") to the token's smallest unit as a string."""
    scaled = Decimal(amount) * (Decimal(10) ** TOKEN_DECIMALS[symbol])
    return str(int(scaled))


@dataclass(frozen=True)
class AcceptedPaymentTerm:
    """A (symbol, exact amount) pair accepted for one generation"""
    symbol: str
    amount: str


# Price of one generation: 0.5 WLD
ACCEPTED_PAYMENT_TERMS = (
    AcceptedPaymentTerm(symbol="WLD", amount=token_to_decimals("0.5", "WLD")),
)


@dataclass
class PaymentRecord:
    """Fields extracted from a portal transaction response"""
    reference: Optional[Any]
    status: Optional[Any]
    recipient: Optional[str]
    symbols: list = field(default_factory=list)
    amounts: list = field(default_factory=list)


@dataclass
class PortalQuery:
    """Result of a portal transaction lookup"""
    ok: bool
    status: Optional[int]
    transaction: Optional[Any] = None
    error: Optional[str] = None


@dataclass
class ConfirmationResult:
    """Result of payment confirmation"""
    success: bool
    reason: Optional[FailureReason] = None
    error: Optional[str] = None
    failed_checks: list[str] = field(default_factory=list)
    upstream_status: Optional[int] = None

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        if self.reason == FailureReason.SERVER_CONFIGURATION_ERROR:
            return 500
        if self.reason == FailureReason.PORTAL_QUERY_FAILED:
            return 502
        return 400


def extract_payment_record(transaction: Any) -> PaymentRecord:
    """
    Pull the fields we validate out of a loosely-shaped portal response.

    Precedence:
    - recipient: "recipient", then "to" (lower-cased)
    - amounts: "amount", "token_amount", then tokens[0]["token_amount"]
    - symbols: "token", "symbol", then tokens[0]["symbol"]

    Falsy candidates are dropped.
    """
    tx = transaction if isinstance(transaction, dict) else {}

    tokens = tx.get("tokens")
    primary_token = tokens[0] if isinstance(tokens, list) and tokens else None
    if not isinstance(primary_token, dict):
        primary_token = {}

    recipient = tx.get("recipient") or tx.get("to")
    recipient = recipient.lower() if isinstance(recipient, str) else None

    amounts = [
        candidate
        for candidate in (tx.get("amount"), tx.get("token_amount"), primary_token.get("token_amount"))
        if candidate
    ]
    symbols = [
        candidate
        for candidate in (tx.get("token"), tx.get("symbol"), primary_token.get("symbol"))
        if candidate
    ]

    return PaymentRecord(
        reference=tx.get("reference"),
        status=tx.get("status"),
        recipient=recipient,
        symbols=symbols,
        amounts=amounts,
    )


def matches_accepted_terms(record: PaymentRecord, terms=ACCEPTED_PAYMENT_TERMS) -> bool:
    """True if no token info is present, or it matches an accepted term exactly."""
    if not record.symbols or not record.amounts:
        return True
    return any(term.symbol in record.symbols and term.amount in record.amounts for term in terms)


def validate_payment_record(record: PaymentRecord, expected_reference: str, expected_recipient: str) -> list[str]:
    """Return the failed check tags, in a fixed order; empty means valid."""
    reference_ok = record.reference == expected_reference
    status_ok = record.status != FAILED_STATUS
    recipient_ok = (record.recipient == expected_recipient.lower()) if record.recipient else True
    token_ok = amount_ok = matches_accepted_terms(record)

    logger.info(
        "Payment validation: %s",
        {
            "reference_ok": reference_ok,
            "status_ok": status_ok,
            "recipient_ok": recipient_ok,
            "token_ok": token_ok,
            "amount_ok": amount_ok,
            "tx_status": record.status,
            "tx_reference": record.reference,
            "expected_reference": expected_reference,
        },
    )

    checks = [
        (reference_ok, "reference_mismatch"),
        (status_ok, "invalid_status"),
        (recipient_ok, "recipient_mismatch"),
        (token_ok, "token_mismatch"),
        (amount_ok, "amount_mismatch"),
    ]
    return [tag for ok, tag in checks if not ok]


async def fetch_portal_transaction(transaction_id: str, app_id: str, api_key: str) -> PortalQuery:
    """
    Look up a MiniKit transaction on the Developer Portal.

    No caching: every call is a fresh round trip.
    """
    url = f"{config.dev_portal_base_url()}/api/v2/minikit/transaction/{quote(transaction_id, safe='')}"
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Cache-Control": "no-store",
    }
    params = {"app_id": app_id}

    ssl_context = ssl.create_default_context(cafile=certifi.where())
    connector = aiohttp.TCPConnector(ssl=ssl_context)

    async with aiohttp.ClientSession(connector=connector, timeout=PORTAL_TIMEOUT) as session:
        try:
            async with session.get(url, headers=headers, params=params) as resp:
                if resp.status != 200:
                    error_text = await resp.text()
                    logger.error(f"Developer Portal API failed: {resp.status} {error_text}")
                    return PortalQuery(
                        ok=False,
                        status=resp.status,
                        error=f"Portal query failed: {resp.status}"
                    )
                transaction = await resp.json(content_type=None)
                return PortalQuery(ok=True, status=resp.status, transaction=transaction)

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Developer Portal network error: {e!r}")
            return PortalQuery(ok=False, status=None, error="Portal query failed: network error")
        except ValueError as e:
            logger.error(f"Developer Portal returned invalid JSON: {e}")
            return PortalQuery(ok=False, status=None, error="Portal query failed: invalid response")


async def confirm_payment(
    reference: Optional[str],
    transaction_id: Optional[str],
    cookie_reference: Optional[str],
    store: ReferenceStore,
) -> ConfirmationResult:
    """
    Confirm a client-reported MiniKit payment.

    Checks:
    1. We issued the reference (store or signed cookie)
    2. The portal knows the transaction and echoes the reference
    3. Status is not failed, recipient and token/amount match when reported

    Does not consume the reference; generation does that.

    Args:
        reference: Reference the client paid with
        transaction_id: MiniKit transaction id from the success payload
        cookie_reference: Reference from a verified pay_ref cookie, if any
        store: Reference store

    Returns:
        ConfirmationResult with the failed checks on validation failure
    """
    sweep_expired(store)

    in_store = bool(reference) and store.has(reference)
    matches_cookie = bool(reference) and reference == cookie_reference
    if not (in_store or matches_cookie):
        return ConfirmationResult(
            success=False,
            reason=FailureReason.UNKNOWN_OR_EXPIRED_REFERENCE,
            error="Unknown or expired reference",
        )

    try:
        settings = config.require("PAYMENT_RECIPIENT_ADDRESS", "WLD_APP_ID", "DEV_PORTAL_API_KEY")
    except ServerConfigurationError as e:
        logger.error(f"Payment confirmation misconfigured: {e}")
        return ConfirmationResult(
            success=False,
            reason=FailureReason.SERVER_CONFIGURATION_ERROR,
            error="Server configuration error",
        )

    if not transaction_id:
        return ConfirmationResult(
            success=False,
            reason=FailureReason.MISSING_TRANSACTION_ID,
            error="Missing transaction_id",
        )

    query = await fetch_portal_transaction(
        transaction_id,
        settings["WLD_APP_ID"],
        settings["DEV_PORTAL_API_KEY"],
    )
    if not query.ok:
        return ConfirmationResult(
            success=False,
            reason=FailureReason.PORTAL_QUERY_FAILED,
            error=query.error,
            upstream_status=query.status,
        )

    record = extract_payment_record(query.transaction)
    failed_checks = validate_payment_record(record, reference, settings["PAYMENT_RECIPIENT_ADDRESS"])

    if failed_checks:
        failure_reason = ", ".join(failed_checks)
        logger.error(f"Payment validation failed: {failure_reason}")
        return ConfirmationResult(
            success=False,
            reason=FailureReason.VALIDATION_FAILED,
            error=f"Validation failed: {failure_reason}",
            failed_checks=failed_checks,
        )

    logger.info(f"Payment confirmed for reference {reference}")
    return ConfirmationResult(success=True)


def get_payment_info() -> dict:
    """Get payment information for users"""
    return {
        "recipient_address": config.payment_recipient_address(),
        "accepted": [
            {"symbol": term.symbol, "token_amount": term.amount}
            for term in ACCEPTED_PAYMENT_TERMS
        ],
        "amount_display": "0.5 WLD",
        "reference_ttl_seconds": REFERENCE_TTL_SECONDS,
        "instructions": [
            "1. Request a payment reference",
            "2. Pay 0.5 WLD with MiniKit using the reference",
            "3. Confirm the payment",
            "4. Generate your travel photo with the same reference"
        ]
    }
