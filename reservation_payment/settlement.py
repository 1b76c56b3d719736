"""
Settlement rules for reservation payments.

Everything here is free of I/O: the crud layer loads a reservation, hands it
to these functions to decide whether a payment may be taken and what the
reservation looks like afterwards, then persists the result in one
transaction.
"""
import logging
import math
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime
from numbers import Number

from reservation_payment.errors import (
    AlreadySettled,
    AmountExceedsBalance,
    InvalidState,
    ValidationError,
)
from reservation_payment.models import PaymentMethod, PaymentStatus, ReservationStatus, SpotStatus

BASE36_ALPHABET = string.digits + string.ascii_uppercase

NOT_PAYABLE_STATUSES = (ReservationStatus.CANCELLED, ReservationStatus.COMPLETED)


@dataclass(frozen=True)
class PaymentSummary:
    total_paid: int
    remaining_amount: int
    is_fully_paid: bool


def counts_toward_paid(payment) -> bool:
    # failed gateway attempts release their share of the balance
    return payment.status != PaymentStatus.FAILED


def summarize(reservation) -> PaymentSummary:
    """Balance of a reservation over its PENDING and COMPLETED payments.

    FAILED payments are left out, so an abandoned online attempt does not
    keep its amount locked against the reservation.
    """
    total_paid = sum(p.amount for p in reservation.payments if counts_toward_paid(p))
    return PaymentSummary(
        total_paid=total_paid,
        remaining_amount=reservation.total_amount - total_paid,
        is_fully_paid=reservation.total_amount <= total_paid,
    )


def validate_payment_request(amount, payment_method) -> tuple:
    """Check the raw request before any persistence access.

    Returns the amount as an int and the method as a PaymentMethod.
    """
    if isinstance(amount, bool) or not isinstance(amount, Number):
        raise ValidationError("Amount must be a number")
    if amount <= 0:
        raise ValidationError("Amount must be positive")
    if isinstance(amount, float):
        if not amount.is_integer():
            raise ValidationError("Amount must be a whole number of currency units")
        amount = int(amount)

    try:
        method = PaymentMethod(payment_method)
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(f"Payment method must be one of: {allowed}")

    return amount, method


def check_payable(reservation, amount: int) -> PaymentSummary:
    if reservation.status in NOT_PAYABLE_STATUSES:
        logging.warning(f"Reservation {reservation.id} is {reservation.status.value} and cannot be paid")
        raise InvalidState("This reservation cannot be paid")

    summary = summarize(reservation)
    if summary.remaining_amount <= 0:
        logging.warning(f"Reservation {reservation.id} is already settled")
        raise AlreadySettled("This reservation has already been paid")

    if amount > summary.remaining_amount:
        logging.warning(
            f"Payment of {amount} for reservation {reservation.id} exceeds remaining {summary.remaining_amount}"
        )
        raise AmountExceedsBalance(summary.remaining_amount)

    return summary


def apply_settlement(reservation, new_total_paid: int) -> bool:
    """Record a completed payment total on the reservation and its held spot."""
    is_fully_paid = new_total_paid >= reservation.total_amount

    reservation.paid_amount = new_total_paid
    reservation.is_paid = is_fully_paid
    if is_fully_paid:
        reservation.status = ReservationStatus.CONFIRMED
        if reservation.spot_id and reservation.spot is not None:
            reservation.spot.status = SpotStatus.RESERVED
            logging.info(f"Spot {reservation.spot_id} reserved for reservation {reservation.id}")

    return is_fully_paid


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def random_base36(length: int) -> str:
    return "".join(secrets.choice(BASE36_ALPHABET) for _ in range(length))


def epoch_millis() -> int:
    return int(time.time() * 1000)


def generate_transaction_id() -> str:
    return f"TRX-{epoch_millis()}-{random_base36(6)}"


def generate_receipt_number() -> str:
    return f"RCT-{epoch_millis()}"


def generate_reservation_code() -> str:
    return f"PRK-{to_base36(epoch_millis())}-{random_base36(3)}"


def calculate_fee(
    entry_time: datetime,
    exit_time: datetime,
    hourly_rate: int,
    entrance_fee: int = 0,
    free_minutes: int = 0,
) -> int:
    if exit_time < entry_time:
        raise ValidationError("Exit time cannot be before entry time")

    duration_minutes = math.floor((exit_time - entry_time).total_seconds() / 60)
    if duration_minutes <= free_minutes:
        return 0

    paid_minutes = duration_minutes - free_minutes
    return entrance_fee + round(paid_minutes / 60 * hourly_rate)
