import enum
from sqlalchemy import Column, Integer, Boolean, TIMESTAMP, String, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from reservation_payment.database import Base


class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    POS = "POS"
    ONLINE = "ONLINE"
    CREDIT = "CREDIT"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SpotStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    OCCUPIED = "OCCUPIED"
    MAINTENANCE = "MAINTENANCE"


class ParkingSpot(Base):
    __tablename__ = "parking_spots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(String(20), nullable=False)
    status = Column(Enum(SpotStatus), nullable=False, default=SpotStatus.AVAILABLE)


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reservation_code = Column(String(40), nullable=False, unique=True)
    customer_name = Column(String(120), nullable=False)
    customer_phone = Column(String(20), nullable=False)
    customer_email = Column(String(120), nullable=True)
    vehicle_plate = Column(String(20), nullable=True)
    spot_id = Column(Integer, ForeignKey("parking_spots.id"), nullable=True)
    start_time = Column(TIMESTAMP, nullable=False)
    end_time = Column(TIMESTAMP, nullable=False)
    duration = Column(Integer, nullable=False)
    total_amount = Column(Integer, nullable=False)
    paid_amount = Column(Integer, nullable=False, default=0)
    is_paid = Column(Boolean, nullable=False, default=False)
    status = Column(Enum(ReservationStatus), nullable=False, default=ReservationStatus.PENDING)
    notes = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    spot = relationship("ParkingSpot")
    payments = relationship(
        "ReservationPayment",
        back_populates="reservation",
        order_by="ReservationPayment.id.desc()",
    )

    @property
    def customer(self):
        return {"name": self.customer_name, "phone": self.customer_phone, "email": self.customer_email}


class ReservationPayment(Base):
    __tablename__ = "reservation_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    transaction_id = Column(String(40), nullable=False, unique=True)
    receipt_number = Column(String(40), nullable=True)
    gateway_response = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    reservation = relationship("Reservation", back_populates="payments")
