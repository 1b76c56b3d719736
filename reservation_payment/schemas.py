from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Union
from datetime import datetime
from reservation_payment.models import PaymentMethod, PaymentStatus, ReservationStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PaymentDetail(CamelModel):
    id: int
    reservation_id: int
    amount: int
    payment_method: PaymentMethod
    status: PaymentStatus
    transaction_id: str
    receipt_number: Optional[str] = None
    gateway_response: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class CustomerSummary(CamelModel):
    name: str
    phone: str
    email: Optional[str] = None


class ReservationDetail(CamelModel):
    id: int
    reservation_code: str
    customer: CustomerSummary
    vehicle_plate: Optional[str] = None
    spot_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    duration: int
    total_amount: int
    paid_amount: int
    is_paid: bool
    status: ReservationStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    payments: List[PaymentDetail] = []


class PaymentInfo(CamelModel):
    reservation: ReservationDetail
    total_paid: int
    remaining_amount: int
    is_fully_paid: bool


class PaymentInfoResponse(CamelModel):
    success: bool = True
    data: PaymentInfo


class PaymentSubmission(CamelModel):
    amount: int = Field(..., gt=0)
    payment_method: PaymentMethod
    description: Optional[str] = None


class OnlinePaymentResult(CamelModel):
    payment: PaymentDetail
    payment_url: str
    authority: str
    message: str


class OfflinePaymentResult(CamelModel):
    payment: PaymentDetail
    message: str


class PaymentSubmissionResponse(CamelModel):
    success: bool = True
    data: Union[OnlinePaymentResult, OfflinePaymentResult]


class ReservationCreate(CamelModel):
    customer_name: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1)
    customer_email: Optional[str] = None
    vehicle_plate: Optional[str] = None
    spot_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = None


class ReservationResponse(CamelModel):
    success: bool = True
    data: ReservationDetail
    message: Optional[str] = None
