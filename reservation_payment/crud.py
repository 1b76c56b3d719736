import os
import json
import math
import logging
from datetime import timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import SQLAlchemyError
from reservation_payment.errors import GatewayError, InvalidState, NotFound, SettlementError, ValidationError
from reservation_payment.models import (
    ParkingSpot,
    PaymentMethod,
    PaymentStatus,
    Reservation,
    ReservationPayment,
    ReservationStatus,
    SpotStatus,
)
from reservation_payment.services import PaymentGateway, PaymentRequest
from reservation_payment.settlement import (
    apply_settlement,
    calculate_fee,
    check_payable,
    generate_receipt_number,
    generate_reservation_code,
    generate_transaction_id,
    summarize,
    validate_payment_request,
)

logging.basicConfig(level=logging.INFO)

BASE_URL = os.getenv("BASE_URL", "http://localhost:3000")
DEFAULT_HOURLY_RATE = int(os.getenv("DEFAULT_HOURLY_RATE", "10000"))

ACTIVE_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED, ReservationStatus.ACTIVE)


async def load_reservation(db: AsyncSession, reservation_id: int, lock: bool = False):
    query = (
        select(Reservation)
        .options(selectinload(Reservation.payments), selectinload(Reservation.spot))
        .where(Reservation.id == reservation_id)
    )
    if lock:
        query = query.with_for_update()

    result = await db.execute(query)
    return result.scalars().first()


async def get_reservation(db: AsyncSession, reservation_id: int):
    reservation = await load_reservation(db, reservation_id)
    if not reservation:
        logging.error(f"Reservation {reservation_id} not found.")
        raise NotFound("Reservation not found")
    return reservation


async def get_payment_info(db: AsyncSession, reservation_id: int):
    logging.info(f"Fetching payment info for reservation ID: {reservation_id}")
    reservation = await get_reservation(db, reservation_id)
    summary = summarize(reservation)

    return {
        "reservation": reservation,
        "total_paid": summary.total_paid,
        "remaining_amount": summary.remaining_amount,
        "is_fully_paid": summary.is_fully_paid,
    }


async def submit_payment(db: AsyncSession, gateway: PaymentGateway, reservation_id: int, amount,
                         payment_method, description: str = None):
    amount, method = validate_payment_request(amount, payment_method)

    try:
        reservation = await load_reservation(db, reservation_id, lock=True)
        if not reservation:
            logging.error(f"Reservation {reservation_id} not found.")
            raise NotFound("Reservation not found")

        summary = check_payable(reservation, amount)
        transaction_id = generate_transaction_id()

        if method == PaymentMethod.ONLINE:
            request = PaymentRequest(
                amount=amount,
                order_id=reservation.reservation_code,
                description=description or f"Parking reservation payment {reservation.reservation_code}",
                mobile=reservation.customer_phone,
                email=reservation.customer_email,
                callback_url=f"{BASE_URL}/api/reservations/{reservation.id}/payment/callback",
            )
            result = await gateway.request_payment(request)
            if not result.success:
                logging.error(f"Gateway rejected payment for reservation {reservation_id}: {result.error_message}")
                raise GatewayError(result.error_message or "Could not connect to the payment gateway")

            payment = ReservationPayment(
                amount=amount,
                payment_method=method,
                transaction_id=transaction_id,
                status=PaymentStatus.PENDING,
                description=description,
                gateway_response=json.dumps({"authority": result.authority, "paymentUrl": result.payment_url}),
            )
            reservation.payments.append(payment)
            await db.commit()
            await db.refresh(payment)

            logging.info(f"Created pending online payment {transaction_id} for reservation {reservation_id}")
            return {
                "payment": payment,
                "payment_url": result.payment_url,
                "authority": result.authority,
                "message": "Please continue to the payment gateway",
            }

        payment = ReservationPayment(
            amount=amount,
            payment_method=method,
            transaction_id=transaction_id,
            status=PaymentStatus.COMPLETED,
            description=description,
            receipt_number=generate_receipt_number(),
        )
        reservation.payments.append(payment)
        is_fully_paid = apply_settlement(reservation, summary.total_paid + amount)
        await db.commit()
        await db.refresh(payment)

        logging.info(
            f"Recorded {method.value} payment {transaction_id} of {amount} for reservation {reservation_id} "
            f"(fully paid: {is_fully_paid})"
        )
        return {"payment": payment, "message": "Payment recorded successfully"}
    except (SettlementError, SQLAlchemyError):
        await db.rollback()
        raise


def _stored_authority(payment: ReservationPayment):
    if not payment.gateway_response:
        return None
    try:
        return json.loads(payment.gateway_response).get("authority")
    except (ValueError, AttributeError):
        return None


async def handle_gateway_callback(db: AsyncSession, gateway: PaymentGateway, reservation_id: int,
                                  authority: str, status: str):
    """Finalize a pending online payment after the customer returns from the gateway.

    Returns a dict with an ``outcome`` of ``success``, ``failed`` or ``cancelled``
    and, where available, the gateway reference or error message.
    """
    if not authority or not status:
        raise ValidationError("Invalid callback parameters")

    try:
        reservation = await load_reservation(db, reservation_id, lock=True)
        if not reservation:
            raise NotFound("Reservation not found")

        payment = next(
            (
                p for p in reservation.payments
                if p.status == PaymentStatus.PENDING and _stored_authority(p) == authority
            ),
            None,
        )
        if not payment:
            logging.warning(f"No pending payment with authority {authority} for reservation {reservation_id}")
            raise NotFound("Payment not found")

        if status != "OK":
            payment.status = PaymentStatus.FAILED
            payment.gateway_response = json.dumps({"authority": authority, "status": "CANCELLED"})
            await db.commit()
            logging.info(f"Online payment {payment.transaction_id} cancelled by customer")
            return {"outcome": "cancelled"}

        verification = await gateway.verify_payment(authority, payment.amount)
        if not verification.success:
            payment.status = PaymentStatus.FAILED
            payment.gateway_response = json.dumps({
                "authority": authority,
                "errorCode": verification.error_code,
                "errorMessage": verification.error_message,
            })
            await db.commit()
            logging.error(f"Verification failed for payment {payment.transaction_id}: {verification.error_message}")
            return {"outcome": "failed", "error": verification.error_message}

        payment.status = PaymentStatus.COMPLETED
        payment.receipt_number = verification.ref_id
        payment.gateway_response = json.dumps({
            "authority": authority,
            "refId": verification.ref_id,
            "cardNumber": verification.card_number,
        })
        apply_settlement(reservation, summarize(reservation).total_paid)
        await db.commit()

        logging.info(f"Online payment {payment.transaction_id} completed with reference {verification.ref_id}")
        return {"outcome": "success", "ref_id": verification.ref_id}
    except (SettlementError, SQLAlchemyError):
        await db.rollback()
        raise


def _naive_utc(value):
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


async def create_reservation(db: AsyncSession, data):
    start_time = _naive_utc(data.start_time)
    end_time = _naive_utc(data.end_time)
    if end_time <= start_time:
        raise ValidationError("End time must be after start time")

    try:
        if data.spot_id:
            spot = await db.get(ParkingSpot, data.spot_id)
            if not spot:
                raise NotFound("Parking spot not found")
            if spot.status != SpotStatus.AVAILABLE:
                raise InvalidState("The selected parking spot is not available")

            result = await db.execute(
                select(Reservation.id).where(
                    Reservation.spot_id == data.spot_id,
                    Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
                    Reservation.start_time < end_time,
                    Reservation.end_time > start_time,
                )
            )
            if result.scalars().first() is not None:
                raise InvalidState("This parking spot is already reserved for the requested time")

        duration = math.floor((end_time - start_time).total_seconds() / 60)
        reservation = Reservation(
            reservation_code=generate_reservation_code(),
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            customer_email=data.customer_email,
            vehicle_plate=data.vehicle_plate,
            spot_id=data.spot_id,
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            total_amount=calculate_fee(start_time, end_time, DEFAULT_HOURLY_RATE),
            paid_amount=0,
            is_paid=False,
            status=ReservationStatus.PENDING,
            notes=data.notes,
            payments=[],
        )
        db.add(reservation)
        await db.commit()

        logging.info(f"Created reservation {reservation.reservation_code} for {reservation.total_amount}")
        return reservation
    except (SettlementError, SQLAlchemyError):
        await db.rollback()
        raise
