from datetime import date, datetime
from decimal import Decimal
from unittest import mock

import pytest

from villa_api.services.booking_dialog import (
    DATES_OUT_OF_ORDER, MISSING_DATES, BookingDialog, DialogStep, VillaSummary,
)
from villa_api.services.checkout_client import CheckoutApiClient, CheckoutApiError


class FakeInitiator:
    def __init__(self, fail_with=None):
        self.calls = []
        self.fail_with = fail_with

    def __call__(self, payload):
        self.calls.append(payload)
        if self.fail_with:
            raise CheckoutApiError(self.fail_with, status_code=502)
        n = len(self.calls)
        return {"clientSecret": f"cs_{n}_secret", "sessionId": f"cs_{n}"}


@pytest.fixture
def villa():
    return VillaSummary(id="v1", name="Coral Cove", location="Holetown, Barbados",
                        price_per_night=Decimal("500"), currency="USD", max_guests=6)


@pytest.fixture
def initiator():
    return FakeInitiator()


def _dialog(villa, initiator, **kw):
    d = BookingDialog(villa, initiator, **kw)
    d.open()
    return d


def _fill(d, check_in=date(2025, 6, 1), check_out=date(2025, 6, 4), guests=2):
    d.set_check_in(check_in)
    d.set_check_out(check_out)
    d.set_guests(guests)


def test_valid_stay_moves_to_checkout(villa, initiator):
    d = _dialog(villa, initiator)
    _fill(d)
    assert d.nights == 3
    assert d.total == Decimal("1500")
    assert d.proceed_to_checkout() is True
    assert d.step == DialogStep.CHECKOUT
    assert d.error == ""


def test_reversed_dates_stay_on_dates(villa, initiator):
    d = _dialog(villa, initiator)
    _fill(d, check_in=date(2025, 6, 4), check_out=date(2025, 6, 1))
    assert d.proceed_to_checkout() is False
    assert d.step == DialogStep.DATES
    assert d.error == DATES_OUT_OF_ORDER
    assert initiator.calls == []


@pytest.mark.parametrize("check_in,check_out", [
    (date(2025, 6, 1), date(2025, 6, 1)),
    (date(2025, 6, 10), date(2025, 6, 2)),
    (date(2026, 1, 1), date(2025, 12, 31)),
])
def test_non_positive_nights_rejected(villa, initiator, check_in, check_out):
    d = _dialog(villa, initiator)
    _fill(d, check_in=check_in, check_out=check_out)
    assert d.proceed_to_checkout() is False
    assert d.step == DialogStep.DATES
    assert d.error


def test_missing_dates_rejected(villa, initiator):
    d = _dialog(villa, initiator)
    d.set_check_in(date(2025, 6, 1))
    assert d.proceed_to_checkout() is False
    assert d.error == MISSING_DATES
    assert d.step == DialogStep.DATES


def test_guests_clamped_to_max(villa, initiator):
    d = _dialog(villa, initiator)
    assert d.set_guests(10) == 6
    assert d.intent.guests == 6
    assert d.set_guests(0) == 1


def test_total_recomputed_on_date_change(villa, initiator):
    d = _dialog(villa, initiator)
    _fill(d)
    assert d.total == Decimal("1500")
    d.set_check_out(date(2025, 6, 8))
    assert d.nights == 7
    assert d.total == Decimal("3500")
    d.set_guests(4)
    assert d.total == Decimal("3500")


def test_close_resets_everything(villa, initiator):
    d = _dialog(villa, initiator)
    _fill(d, guests=5)
    d.proceed_to_checkout()
    d.surface.mount()
    d.close()
    d.open()
    assert d.step == DialogStep.DATES
    assert d.intent.check_in is None and d.intent.check_out is None
    assert d.intent.guests == 2
    assert d.error == ""
    assert d.attempt is None and d.surface is None


def test_close_from_success_resets(villa, initiator):
    d = _dialog(villa, initiator)
    _fill(d)
    d.proceed_to_checkout()
    d.surface.mount()
    d.surface.complete("cs_1")
    assert d.step == DialogStep.SUCCESS
    d.close()
    assert d.step == DialogStep.DATES
    assert d.session_id is None


def test_secret_is_fetched_lazily_on_mount(villa, initiator):
    d = _dialog(villa, initiator)
    _fill(d)
    d.proceed_to_checkout()
    assert initiator.calls == []
    assert d.surface.mount() == "cs_1_secret"
    payload = initiator.calls[0]
    assert payload["checkIn"] == "2025-06-01"
    assert payload["checkOut"] == "2025-06-04"
    assert payload["guests"] == 2
    assert payload["pricePerNight"] == 500.0
    assert payload["totalAmount"] == 1500.0


def test_back_discards_in_flight_attempt(villa):
    d = None

    def slow_initiator(payload):
        # guest clicks "Back" while the request is still running
        d.back_to_dates()
        return {"clientSecret": "stale_secret", "sessionId": "cs_stale"}

    d = _dialog(villa, slow_initiator)
    _fill(d)
    d.proceed_to_checkout()
    surface = d.surface
    assert surface.mount() is None
    assert d.step == DialogStep.DATES

    # a late completion from the abandoned surface is ignored
    surface.complete("cs_stale")
    assert d.step == DialogStep.DATES


def test_back_then_forward_opens_new_attempt(villa, initiator):
    d = _dialog(villa, initiator)
    _fill(d)
    d.proceed_to_checkout()
    first = d.attempt
    d.back_to_dates()
    assert first.cancelled
    assert d.step == DialogStep.DATES
    d.proceed_to_checkout()
    assert d.attempt is not first
    assert d.surface.mount() == "cs_1_secret"


def test_session_failure_offers_retry(villa):
    failing = FakeInitiator(fail_with="Payment provider unavailable")
    d = _dialog(villa, failing)
    _fill(d)
    d.proceed_to_checkout()
    assert d.surface.mount() is None
    assert d.step == DialogStep.CHECKOUT
    assert d.error == "Payment provider unavailable"
    assert d.can_retry

    failing.fail_with = None
    assert d.retry() is True
    assert d.error == ""
    assert d.surface.mount() == "cs_2_secret"


def test_payment_failure_is_reported(villa, initiator):
    d = _dialog(villa, initiator)
    _fill(d)
    d.proceed_to_checkout()
    d.surface.mount()
    d.surface.fail("Your card was declined.")
    assert d.step == DialogStep.CHECKOUT
    assert d.error == "Your card was declined."
    assert d.can_retry


def test_success_only_via_completion_callback(villa, initiator):
    d = _dialog(villa, initiator)
    _fill(d)
    d.proceed_to_checkout()
    # not mounted yet: the surface cannot report completion
    d.surface.complete("cs_1")
    assert d.step == DialogStep.CHECKOUT
    d.surface.mount()
    d.surface.complete()
    assert d.step == DialogStep.SUCCESS
    assert d.session_id == "cs_1"


def test_success_summary_prefers_server_confirmation(villa, initiator):
    confirmed = {
        "status": "complete", "bookingRef": "VLA-ABC123", "checkIn": "2025-06-01", "checkOut": "2025-06-04",
        "nights": 3, "guests": 2, "currency": "USD", "totalAmount": 1500.0, "amountCharged": 750.0,
        "remainingAmount": 750.0,
    }
    d = _dialog(villa, initiator, confirmer=lambda sid: confirmed)
    _fill(d)
    d.proceed_to_checkout()
    d.surface.mount()
    d.surface.complete("cs_1")
    summary = d.summary()
    assert summary["awaitingConfirmation"] is False
    assert summary["bookingRef"] == "VLA-ABC123"
    assert summary["amountCharged"] == Decimal("750.0")


def test_success_awaits_confirmation_when_webhook_not_processed(villa, initiator):
    answers = [{"status": "open"}, {"status": "complete", "bookingRef": "VLA-ZZZ999", "totalAmount": 1500.0,
                                     "amountCharged": 1500.0, "remainingAmount": 0.0}]
    d = _dialog(villa, initiator, confirmer=lambda sid: answers.pop(0))
    _fill(d)
    d.proceed_to_checkout()
    d.surface.mount()
    d.surface.complete("cs_1")
    assert d.awaiting_confirmation
    assert d.summary()["total"] == Decimal("1500")
    d.refresh_confirmation()
    assert not d.awaiting_confirmation
    assert d.summary()["bookingRef"] == "VLA-ZZZ999"


def test_default_guests_respect_small_villas(initiator):
    studio = VillaSummary(id="v2", name="Studio", location="", price_per_night=Decimal("200"), max_guests=1)
    d = _dialog(studio, initiator)
    assert d.intent.guests == 1


def test_dialog_wired_to_http_client(villa):
    api = mock.Mock(spec=CheckoutApiClient)
    api.create_session.return_value = {"clientSecret": "cs_9_secret", "sessionId": "cs_9"}
    api.get_session_status.return_value = {"status": "complete", "bookingRef": "VLA-HTTP01", "totalAmount": 1500.0,
                                           "amountCharged": 1500.0, "remainingAmount": 0.0}
    d = BookingDialog.with_api(villa, api)
    d.open()
    _fill(d)
    d.proceed_to_checkout()
    assert d.surface.mount() == "cs_9_secret"
    d.surface.complete()
    api.get_session_status.assert_called_once_with("cs_9")
    assert d.summary()["bookingRef"] == "VLA-HTTP01"


def test_datetime_input_is_sent_as_calendar_date(villa, initiator):
    d = _dialog(villa, initiator)
    d.set_check_in(datetime(2025, 6, 1, 15, 30))
    d.set_check_out(datetime(2025, 6, 4, 10, 0))
    assert d.intent.check_in == date(2025, 6, 1)
    assert d.nights == 3
    d.proceed_to_checkout()
    d.surface.mount()
    payload = initiator.calls[0]
    assert payload["checkIn"] == "2025-06-01"
    assert payload["checkOut"] == "2025-06-04"
    assert payload["totalAmount"] == 1500.0
