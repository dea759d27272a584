import asyncio

import pytest

from api.payment import (
    ACCEPTED_PAYMENT_TERMS,
    PortalQuery,
    confirm_payment,
    extract_payment_record,
    token_to_decimals,
    validate_payment_record,
)
from api.references import FailureReason, issue_reference
from tests.conftest import RECIPIENT

WLD_HALF = "500000000000000000"


def portal_tx(reference, **overrides):
    tx = {
        "transaction_id": "0xtx",
        "reference": reference,
        "status": "mined",
        "to": RECIPIENT.lower(),
        "tokens": [{"symbol": "WLD", "token_amount": WLD_HALF}],
    }
    tx.update(overrides)
    return tx


@pytest.fixture
def fetch(mocker):
    return mocker.patch("api.payment.fetch_portal_transaction", new_callable=mocker.AsyncMock)


def run_confirm(reference, store, transaction_id="0xtx", cookie_reference=None):
    return asyncio.run(confirm_payment(reference, transaction_id, cookie_reference, store))


def test_accepted_terms_are_half_wld():
    assert token_to_decimals("0.5", "WLD") == WLD_HALF
    assert [(t.symbol, t.amount) for t in ACCEPTED_PAYMENT_TERMS] == [("WLD", WLD_HALF)]


def test_extract_prefers_top_level_fields():
    record = extract_payment_record({
        "recipient": "0xRECIPIENT",
        "to": "0xOTHER",
        "amount": "1",
        "token_amount": "2",
        "token": "USDCE",
        "symbol": "WLD",
        "tokens": [{"symbol": "X", "token_amount": "3"}],
    })

    assert record.recipient == "0xrecipient"
    assert record.amounts == ["1", "2", "3"]
    assert record.symbols == ["USDCE", "WLD", "X"]


def test_extract_falls_back_to_to_and_first_token():
    record = extract_payment_record({
        "to": "0xABC",
        "tokens": [{"symbol": "WLD", "token_amount": WLD_HALF}, {"symbol": "USDCE", "token_amount": "1"}],
    })

    assert record.recipient == "0xabc"
    assert record.symbols == ["WLD"]
    assert record.amounts == [WLD_HALF]


def test_extract_tolerates_odd_shapes():
    for odd in (None, [], "string", {"tokens": "nope"}, {"tokens": []}, {"tokens": ["nope"]}):
        record = extract_payment_record(odd)
        assert record.reference is None
        assert record.recipient is None
        assert record.symbols == []
        assert record.amounts == []


def test_failed_status_is_reported_even_when_rest_matches():
    record = extract_payment_record(portal_tx("r" * 32, status="failed"))
    assert validate_payment_record(record, "r" * 32, RECIPIENT) == ["invalid_status"]


def test_token_movements_match_accepted_term():
    record = extract_payment_record(portal_tx("r" * 32))
    assert validate_payment_record(record, "r" * 32, RECIPIENT) == []


def test_missing_optional_fields_cannot_contradict():
    record = extract_payment_record({"reference": "r" * 32})
    assert validate_payment_record(record, "r" * 32, RECIPIENT) == []


def test_amount_compared_as_exact_string():
    # Same value, different formatting: not accepted
    record = extract_payment_record(portal_tx("r" * 32, tokens=[{"symbol": "WLD", "token_amount": "5e17"}]))
    assert validate_payment_record(record, "r" * 32, RECIPIENT) == ["token_mismatch", "amount_mismatch"]


def test_every_failed_check_is_listed_in_order():
    record = extract_payment_record({
        "reference": "other",
        "status": "failed",
        "recipient": "0xsomeoneelse",
        "tokens": [{"symbol": "USDCE", "token_amount": "1"}],
    })

    assert validate_payment_record(record, "r" * 32, RECIPIENT) == [
        "reference_mismatch",
        "invalid_status",
        "recipient_mismatch",
        "token_mismatch",
        "amount_mismatch",
    ]


def test_recipient_comparison_ignores_case():
    record = extract_payment_record(portal_tx("r" * 32, to=RECIPIENT.upper().replace("0X", "0x")))
    assert validate_payment_record(record, "r" * 32, RECIPIENT) == []


def test_confirm_success_does_not_consume(store, fetch):
    reference = issue_reference(store)
    fetch.return_value = PortalQuery(ok=True, status=200, transaction=portal_tx(reference))

    first = run_confirm(reference, store)
    second = run_confirm(reference, store)

    assert first.success and second.success
    assert store.get(reference).used is False
    assert store.has(reference)
    fetch.assert_awaited_with("0xtx", "app_test_123", "api_key_test")


def test_confirm_unknown_reference(store, fetch):
    result = run_confirm("f" * 32, store)

    assert result.reason == FailureReason.UNKNOWN_OR_EXPIRED_REFERENCE
    assert result.status_code == 400
    fetch.assert_not_awaited()


def test_confirm_missing_reference(store, fetch):
    result = run_confirm(None, store, cookie_reference=None)
    assert result.reason == FailureReason.UNKNOWN_OR_EXPIRED_REFERENCE


def test_confirm_accepts_cookie_when_store_lost_reference(store, fetch):
    reference = "c" * 32
    fetch.return_value = PortalQuery(ok=True, status=200, transaction=portal_tx(reference))

    result = run_confirm(reference, store, cookie_reference=reference)

    assert result.success is True


def test_confirm_expired_reference_without_cookie(store, clock, fetch):
    reference = issue_reference(store)
    clock.advance(11 * 60)

    result = run_confirm(reference, store)

    assert result.reason == FailureReason.UNKNOWN_OR_EXPIRED_REFERENCE


def test_confirm_missing_configuration(store, fetch, monkeypatch):
    monkeypatch.delenv("DEV_PORTAL_API_KEY")
    reference = issue_reference(store)

    result = run_confirm(reference, store)

    assert result.reason == FailureReason.SERVER_CONFIGURATION_ERROR
    assert result.status_code == 500
    assert "DEV_PORTAL_API_KEY" not in result.error
    fetch.assert_not_awaited()


def test_confirm_missing_transaction_id(store, fetch):
    reference = issue_reference(store)

    result = run_confirm(reference, store, transaction_id=None)

    assert result.reason == FailureReason.MISSING_TRANSACTION_ID
    assert result.status_code == 400


def test_confirm_portal_failure(store, fetch):
    reference = issue_reference(store)
    fetch.return_value = PortalQuery(ok=False, status=404, error="Portal query failed: 404")

    result = run_confirm(reference, store)

    assert result.reason == FailureReason.PORTAL_QUERY_FAILED
    assert result.upstream_status == 404
    assert result.status_code == 502
    assert result.error == "Portal query failed: 404"


def test_confirm_failed_status(store, fetch):
    reference = issue_reference(store)
    fetch.return_value = PortalQuery(ok=True, status=200, transaction=portal_tx(reference, status="failed"))

    result = run_confirm(reference, store)

    assert result.reason == FailureReason.VALIDATION_FAILED
    assert result.failed_checks == ["invalid_status"]
    assert result.error == "Validation failed: invalid_status"
    assert store.has(reference)
