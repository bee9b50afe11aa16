"""Booking dialog: the guest-facing state machine in front of the embedded checkout.

    dates --[valid dates & guests]--> checkout --[provider on_complete]--> success
    checkout --[back]--> dates
    (any state) --[close]--> reset to dates

The dialog never talks to the payment provider directly. It is handed an
``initiator`` (payload -> {"clientSecret", "sessionId", ...}) and optionally a
``confirmer`` (session id -> server-confirmed status); ``CheckoutApiClient``
provides both.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from villa_api.services.checkout_client import CheckoutApiClient, CheckoutApiError
from villa_api.services.pricing import FULL_PAYMENT, count_nights, deposit_for, to_minor_units

logger = logging.getLogger(__name__)

MISSING_DATES = "Please select check-in and check-out dates"
DATES_OUT_OF_ORDER = "Check-out must be after check-in"


class DialogStep(str, Enum):
    DATES = "dates"
    CHECKOUT = "checkout"
    SUCCESS = "success"


@dataclass(frozen=True)
class VillaSummary:
    id: str
    name: str
    location: str
    price_per_night: Decimal        # major units
    currency: str = "USD"
    max_guests: int = 2
    image: str = ""


@dataclass
class BookingIntent:
    villa: VillaSummary
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    guests: int = 2

    @property
    def nights(self) -> int:
        return count_nights(self.check_in, self.check_out)

    @property
    def total(self) -> Decimal:
        nights = self.nights
        if nights < 1:
            return Decimal(0)
        return Decimal(str(self.villa.price_per_night)) * nights

    def to_session_request(self, deposit_percentage: int = FULL_PAYMENT) -> dict:
        total_minor = to_minor_units(self.total)
        return {
            "villaId": self.villa.id,
            "villaName": self.villa.name,
            "location": self.villa.location,
            "checkIn": self.check_in.isoformat(),
            "checkOut": self.check_out.isoformat(),
            "guests": self.guests,
            "pricePerNight": float(self.villa.price_per_night),
            "currency": self.villa.currency,
            "depositPercentage": deposit_percentage,
            "totalAmount": total_minor / 100,
            "depositAmount": deposit_for(total_minor, deposit_percentage) / 100,
        }


class AttemptCancelled(Exception):
    """The guest went back to the dates step while this attempt was in flight."""


class CheckoutAttempt:
    def __init__(self, number: int, request: dict, initiator: Callable[[dict], dict]):
        self.number = number
        self.request = request
        self._initiator = initiator
        self._cancelled = False
        self.session_id: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def fetch_client_secret(self) -> str:
        if self._cancelled:
            raise AttemptCancelled(f"attempt {self.number} was cancelled")
        result = self._initiator(self.request)
        # the request may finish after the guest navigated away; never surface its secret
        if self._cancelled:
            raise AttemptCancelled(f"attempt {self.number} was cancelled")
        self.session_id = result.get("sessionId")
        return result["clientSecret"]


class EmbeddedCheckout:
    """Adapter around the provider's hosted checkout. No business logic of its own."""

    def __init__(self, fetch_client_secret: Callable[[], Optional[str]], on_complete: Callable[[Optional[str]], None],
                 on_error: Optional[Callable[[str], None]] = None):
        self._fetch_client_secret = fetch_client_secret
        self._on_complete = on_complete
        self._on_error = on_error
        self._mounted = False
        self.client_secret: str | None = None

    @property
    def mounted(self) -> bool:
        return self._mounted

    def mount(self) -> Optional[str]:
        """Pull the session secret; called once when the surface is shown."""
        if not self._mounted:
            self._mounted = True
            self.client_secret = self._fetch_client_secret()
        return self.client_secret

    def unmount(self) -> None:
        self._mounted = False

    def complete(self, session_id: Optional[str] = None) -> None:
        if self._mounted:
            self._on_complete(session_id)

    def fail(self, message: str) -> None:
        if self._mounted and self._on_error:
            self._on_error(message)


class BookingDialog:
    def __init__(self, villa: VillaSummary, initiator: Callable[[dict], dict],
                 confirmer: Optional[Callable[[str], dict]] = None, default_guests: int = 2,
                 deposit_percentage: int = FULL_PAYMENT):
        self.villa = villa
        self._initiator = initiator
        self._confirmer = confirmer
        self._default_guests = default_guests
        self._deposit_percentage = deposit_percentage
        self._attempts = 0
        self.is_open = False
        self.reset()

    @classmethod
    def with_api(cls, villa: VillaSummary, api: CheckoutApiClient, **kwargs) -> "BookingDialog":
        return cls(villa, api.create_session, confirmer=api.get_session_status, **kwargs)

    # -- lifecycle -------------------------------------------------------

    def reset(self) -> None:
        self.step = DialogStep.DATES
        self.intent = BookingIntent(villa=self.villa, guests=self._clamp_guests(self._default_guests))
        self.error = ""
        self.can_retry = False
        self.attempt: CheckoutAttempt | None = None
        self.surface: EmbeddedCheckout | None = None
        self.session_id: str | None = None
        self.confirmation: dict | None = None

    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        """Full teardown from any state; the next open starts from scratch."""
        self._drop_attempt()
        self.reset()
        self.is_open = False

    # -- dates step ------------------------------------------------------

    def _clamp_guests(self, value: int) -> int:
        return max(1, min(int(value), self.villa.max_guests))

    @staticmethod
    def _as_date(value: Optional[date]) -> Optional[date]:
        # date pickers may hand over datetimes; the server takes calendar dates
        if isinstance(value, datetime):
            return value.date()
        return value

    def set_check_in(self, value: Optional[date]) -> None:
        self.intent.check_in = self._as_date(value)

    def set_check_out(self, value: Optional[date]) -> None:
        self.intent.check_out = self._as_date(value)

    def set_guests(self, value: int) -> int:
        self.intent.guests = self._clamp_guests(value)
        return self.intent.guests

    @property
    def nights(self) -> int:
        return self.intent.nights

    @property
    def total(self) -> Decimal:
        return self.intent.total

    def proceed_to_checkout(self) -> bool:
        if self.step != DialogStep.DATES:
            return False
        if self.intent.check_in is None or self.intent.check_out is None:
            self.error = MISSING_DATES
            return False
        if self.nights < 1:
            self.error = DATES_OUT_OF_ORDER
            return False
        self.error = ""
        self.step = DialogStep.CHECKOUT
        self._new_attempt()
        return True

    # -- checkout step ---------------------------------------------------

    def _new_attempt(self) -> None:
        self._drop_attempt()
        self._attempts += 1
        attempt = CheckoutAttempt(self._attempts, self.intent.to_session_request(self._deposit_percentage), self._initiator)
        self.attempt = attempt
        self.can_retry = False
        self.surface = EmbeddedCheckout(
            fetch_client_secret=lambda: self._fetch_client_secret(attempt),
            on_complete=lambda session_id: self._handle_complete(attempt, session_id),
            on_error=lambda message: self._handle_error(attempt, message),
        )

    def _drop_attempt(self) -> None:
        if self.attempt:
            self.attempt.cancel()
        if self.surface:
            self.surface.unmount()
        self.attempt = None
        self.surface = None

    def _fetch_client_secret(self, attempt: CheckoutAttempt) -> Optional[str]:
        try:
            return attempt.fetch_client_secret()
        except AttemptCancelled:
            logger.debug("discarding client secret from cancelled attempt %s", attempt.number)
            return None
        except CheckoutApiError as e:
            self._handle_error(attempt, str(e))
            return None

    def _handle_error(self, attempt: CheckoutAttempt, message: str) -> None:
        if attempt is not self.attempt or self.step != DialogStep.CHECKOUT:
            return
        self.error = message or "Payment could not be completed"
        self.can_retry = True

    def retry(self) -> bool:
        if self.step != DialogStep.CHECKOUT or not self.can_retry:
            return False
        self.error = ""
        self._new_attempt()
        return True

    def back_to_dates(self) -> None:
        if self.step != DialogStep.CHECKOUT:
            return
        self._drop_attempt()
        self.error = ""
        self.can_retry = False
        self.step = DialogStep.DATES

    # -- success step ----------------------------------------------------

    def _handle_complete(self, attempt: CheckoutAttempt, session_id: Optional[str]) -> None:
        if attempt is not self.attempt or self.step != DialogStep.CHECKOUT:
            return
        self.session_id = session_id or attempt.session_id
        self.step = DialogStep.SUCCESS
        self.error = ""
        self.refresh_confirmation()

    def refresh_confirmation(self) -> Optional[dict]:
        """Ask the server what was actually booked and charged for this session."""
        if self.step != DialogStep.SUCCESS or not self._confirmer or not self.session_id:
            return self.confirmation
        try:
            status = self._confirmer(self.session_id)
        except CheckoutApiError as e:
            logger.info("confirmation for %s not available yet: %s", self.session_id, e)
            return self.confirmation
        if status.get("status") == "complete" and status.get("bookingRef"):
            self.confirmation = status
        return self.confirmation

    @property
    def awaiting_confirmation(self) -> bool:
        return self.step == DialogStep.SUCCESS and self.confirmation is None

    def summary(self) -> dict:
        intent = self.intent
        out = {
            "step": self.step.value,
            "villaName": self.villa.name,
            "location": self.villa.location,
            "checkIn": intent.check_in.isoformat() if intent.check_in else None,
            "checkOut": intent.check_out.isoformat() if intent.check_out else None,
            "nights": max(self.nights, 0),
            "guests": intent.guests,
            "currency": self.villa.currency,
            "total": self.total,
            "error": self.error,
        }
        if self.step == DialogStep.SUCCESS:
            out["awaitingConfirmation"] = self.awaiting_confirmation
            if self.confirmation:
                c = self.confirmation
                out.update({
                    "bookingRef": c.get("bookingRef"),
                    "checkIn": c.get("checkIn", out["checkIn"]),
                    "checkOut": c.get("checkOut", out["checkOut"]),
                    "nights": c.get("nights", out["nights"]),
                    "guests": c.get("guests", out["guests"]),
                    "currency": c.get("currency", out["currency"]),
                    "total": Decimal(str(c.get("totalAmount"))),
                    "amountCharged": Decimal(str(c.get("amountCharged"))),
                    "remaining": Decimal(str(c.get("remainingAmount", 0))),
                })
        return out
