import httpx
import os
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from reservation_payment.settlement import random_base36

PAYMENT_GATEWAY_URL = os.getenv("PAYMENT_GATEWAY_URL", "https://api.zarinpal.com/pg/v4")
PAYMENT_MERCHANT_ID = os.getenv("PAYMENT_MERCHANT_ID", "test-merchant")
PAYMENT_GATEWAY_TIMEOUT = float(os.getenv("PAYMENT_GATEWAY_TIMEOUT", "10"))
PAYMENT_GATEWAY_SANDBOX = os.getenv("PAYMENT_GATEWAY_SANDBOX", "true").lower() != "false"

SANDBOX_START_PAY_URL = "https://sandbox.zarinpal.com/pg/StartPay"
LIVE_START_PAY_URL = "https://www.zarinpal.com/pg/StartPay"
GATEWAY_SUCCESS_CODE = 100


@dataclass
class PaymentRequest:
    amount: int
    order_id: str
    description: str
    callback_url: str
    mobile: Optional[str] = None
    email: Optional[str] = None


@dataclass
class GatewayPaymentResult:
    success: bool
    authority: Optional[str] = None
    payment_url: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class GatewayVerification:
    success: bool
    ref_id: Optional[str] = None
    card_number: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class PaymentGateway(Protocol):
    async def request_payment(self, request: PaymentRequest) -> GatewayPaymentResult: ...

    async def verify_payment(self, authority: str, amount: int) -> GatewayVerification: ...


class SandboxPaymentGateway:
    """Accepts every request and verification without leaving the process."""

    async def request_payment(self, request: PaymentRequest) -> GatewayPaymentResult:
        authority = f"A{random_base36(10)}"
        logging.info(f"Sandbox gateway issued authority {authority} for order {request.order_id}")
        return GatewayPaymentResult(
            success=True,
            authority=authority,
            payment_url=f"{SANDBOX_START_PAY_URL}/{authority}",
        )

    async def verify_payment(self, authority: str, amount: int) -> GatewayVerification:
        logging.info(f"Sandbox gateway verified authority {authority} for {amount}")
        return GatewayVerification(
            success=True,
            ref_id=f"REF{random_base36(8)}",
            card_number="6037********1234",
        )


class HttpPaymentGateway:
    def __init__(self, base_url: str = PAYMENT_GATEWAY_URL, merchant_id: str = PAYMENT_MERCHANT_ID,
                 timeout: float = PAYMENT_GATEWAY_TIMEOUT, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.merchant_id = merchant_id
        self.timeout = timeout
        self.transport = transport

    async def _post(self, path: str, payload: dict) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(f"{self.base_url}{path}", json=payload)
            return response.json()

    async def request_payment(self, request: PaymentRequest) -> GatewayPaymentResult:
        payload = {
            "merchant_id": self.merchant_id,
            "amount": request.amount,
            "description": request.description,
            "callback_url": request.callback_url,
            "metadata": {"mobile": request.mobile, "email": request.email, "order_id": request.order_id},
        }

        try:
            result = await self._post("/payment/request.json", payload)
        except (httpx.HTTPError, ValueError) as e:
            logging.error(f"Failed to reach payment gateway: {str(e)}")
            return GatewayPaymentResult(
                success=False,
                error_code="NETWORK_ERROR",
                error_message="Could not connect to the payment gateway",
            )

        data = result.get("data") or {}
        if data.get("code") == GATEWAY_SUCCESS_CODE:
            authority = data.get("authority")
            return GatewayPaymentResult(
                success=True,
                authority=authority,
                payment_url=f"{LIVE_START_PAY_URL}/{authority}",
            )

        errors = result.get("errors") or {}
        return GatewayPaymentResult(
            success=False,
            error_code=str(errors.get("code", data.get("code", "UNKNOWN"))),
            error_message=errors.get("message") or "Unknown gateway error",
        )

    async def verify_payment(self, authority: str, amount: int) -> GatewayVerification:
        payload = {"merchant_id": self.merchant_id, "authority": authority, "amount": amount}

        try:
            result = await self._post("/payment/verify.json", payload)
        except (httpx.HTTPError, ValueError) as e:
            logging.error(f"Failed to verify payment {authority}: {str(e)}")
            return GatewayVerification(
                success=False,
                error_code="NETWORK_ERROR",
                error_message="Could not verify the payment with the gateway",
            )

        data = result.get("data") or {}
        if data.get("code") == GATEWAY_SUCCESS_CODE:
            return GatewayVerification(
                success=True,
                ref_id=str(data.get("ref_id")),
                card_number=data.get("card_pan"),
            )

        errors = result.get("errors") or {}
        return GatewayVerification(
            success=False,
            error_code=str(errors.get("code", data.get("code", "UNKNOWN"))),
            error_message=errors.get("message") or "Payment verification failed",
        )


def get_payment_gateway() -> PaymentGateway:
    if PAYMENT_GATEWAY_SANDBOX:
        return SandboxPaymentGateway()
    return HttpPaymentGateway()
