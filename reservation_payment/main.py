import uvicorn
import os
from urllib.parse import quote
from fastapi import FastAPI, Depends, Request
from fastapi import Query
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from reservation_payment.database import init_db, get_db
from reservation_payment.crud import BASE_URL, get_payment_info, submit_payment, handle_gateway_callback
from reservation_payment.crud import create_reservation, get_reservation
from reservation_payment.errors import InternalError, SettlementError
from reservation_payment.schemas import (
    OfflinePaymentResult,
    OnlinePaymentResult,
    PaymentDetail,
    PaymentInfo,
    PaymentInfoResponse,
    PaymentSubmission,
    PaymentSubmissionResponse,
    ReservationCreate,
    ReservationDetail,
    ReservationResponse,
)
from reservation_payment.services import PaymentGateway, get_payment_gateway
import logging

logging.basicConfig(level=logging.INFO)
app = FastAPI(title="Reservation Payment Service", version="1.0.0")


@app.on_event("startup")
async def on_startup():
    await init_db()


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logging.warning(f"Rejected malformed request to {request.url.path}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "invalid request data", "details": jsonable_encoder(exc.errors())},
    )


def error_response(error: SettlementError):
    return JSONResponse(status_code=error.status_code, content={"success": False, "error": error.message})


def internal_error():
    return error_response(InternalError("internal error"))


@app.get("/api/reservations/{reservation_id}/payment", response_model=PaymentInfoResponse)
async def read_payment_info(reservation_id: int, db: AsyncSession = Depends(get_db)):
    try:
        info = await get_payment_info(db, reservation_id)
        return PaymentInfoResponse(data=PaymentInfo(
            reservation=ReservationDetail.model_validate(info["reservation"]),
            total_paid=info["total_paid"],
            remaining_amount=info["remaining_amount"],
            is_fully_paid=info["is_fully_paid"],
        ))
    except SettlementError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"Unexpected error while fetching payment info: {e}")
        return internal_error()


@app.post("/api/reservations/{reservation_id}/payment")
async def process_payment(
        reservation_id: int,
        request: PaymentSubmission,
        db: AsyncSession = Depends(get_db),
        gateway: PaymentGateway = Depends(get_payment_gateway),
):
    try:
        logging.info(
            f"Received {request.payment_method.value} payment of {request.amount} for reservation {reservation_id}"
        )
        result = await submit_payment(
            db, gateway, reservation_id, request.amount, request.payment_method, request.description
        )

        payment = PaymentDetail.model_validate(result["payment"])
        if "payment_url" in result:
            data = OnlinePaymentResult(
                payment=payment,
                payment_url=result["payment_url"],
                authority=result["authority"],
                message=result["message"],
            )
        else:
            data = OfflinePaymentResult(payment=payment, message=result["message"])
        return PaymentSubmissionResponse(data=data)
    except SettlementError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"Unexpected error while processing payment: {e}")
        return internal_error()


@app.get("/api/reservations/{reservation_id}/payment/callback")
async def payment_callback(
        reservation_id: int,
        authority: str = Query(None, alias="Authority"),
        status: str = Query(None, alias="Status"),
        db: AsyncSession = Depends(get_db),
        gateway: PaymentGateway = Depends(get_payment_gateway),
):
    payment_pages = f"{BASE_URL}/reservations/{reservation_id}/payment"
    try:
        result = await handle_gateway_callback(db, gateway, reservation_id, authority, status)
    except SettlementError as e:
        if e.status_code < 500:
            return error_response(e)
        logging.error(f"Payment callback failed: {e.message}")
        return RedirectResponse(f"{payment_pages}/error")
    except Exception as e:
        logging.error(f"Unexpected error in payment callback: {e}")
        return RedirectResponse(f"{payment_pages}/error")

    if result["outcome"] == "success":
        return RedirectResponse(f"{payment_pages}/success?refId={result['ref_id']}")
    if result["outcome"] == "failed":
        return RedirectResponse(f"{payment_pages}/failed?error={quote(result.get('error') or '')}")
    return RedirectResponse(f"{payment_pages}/cancelled")


@app.post("/api/reservations", response_model=ReservationResponse)
async def open_reservation(request: ReservationCreate, db: AsyncSession = Depends(get_db)):
    try:
        logging.info(f"Received reservation request for {request.customer_name}")
        reservation = await create_reservation(db, request)
        return ReservationResponse(
            data=ReservationDetail.model_validate(reservation),
            message="Reservation created successfully",
        )
    except SettlementError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"Unexpected error while creating reservation: {e}")
        return internal_error()


@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse)
async def read_reservation(reservation_id: int, db: AsyncSession = Depends(get_db)):
    try:
        reservation = await get_reservation(db, reservation_id)
        return ReservationResponse(data=ReservationDetail.model_validate(reservation))
    except SettlementError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"Unexpected error while fetching reservation: {e}")
        return internal_error()


if __name__ == "__main__":
    uvicorn.run(
        "reservation_payment.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PAYMENT_SERVICE_PORT", 8001)),
        reload=True,
    )
