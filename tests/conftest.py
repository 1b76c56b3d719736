from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from reservation_payment.crud import load_reservation
from reservation_payment.database import Base, get_db
from reservation_payment.main import app
from reservation_payment.models import (
    ParkingSpot,
    Reservation,
    ReservationPayment,
    ReservationStatus,
    SpotStatus,
)
from reservation_payment.services import (
    GatewayPaymentResult,
    GatewayVerification,
    get_payment_gateway,
)


class StubGateway:
    """Records gateway calls and answers with preset results."""

    def __init__(self):
        self.requests = []
        self.verifications = []
        self.payment_result = GatewayPaymentResult(
            success=True, authority="A1", payment_url="https://sandbox.zarinpal.com/pg/StartPay/A1"
        )
        self.verification_result = GatewayVerification(
            success=True, ref_id="REF12345678", card_number="6037********1234"
        )

    async def request_payment(self, request):
        self.requests.append(request)
        return self.payment_result

    async def verify_payment(self, authority, amount):
        self.verifications.append((authority, amount))
        return self.verification_result


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
async def client(session_factory, gateway):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_spot(session_factory):
    async def _make_spot(status=SpotStatus.AVAILABLE, number="A-1"):
        async with session_factory() as session:
            spot = ParkingSpot(number=number, status=status)
            session.add(spot)
            await session.commit()
            return spot.id
    return _make_spot


@pytest.fixture
def make_reservation(session_factory):
    counter = {"value": 0}

    async def _make_reservation(total_amount=100000, status=ReservationStatus.PENDING, spot_id=None,
                                payments=(), paid_amount=0, is_paid=False):
        counter["value"] += 1
        start = datetime(2026, 10, 18, 8, 0)
        async with session_factory() as session:
            reservation = Reservation(
                reservation_code=f"PRK-TEST-{counter['value']}",
                customer_name="Sara Ahmadi",
                customer_phone="09120000000",
                customer_email="sara@example.com",
                spot_id=spot_id,
                start_time=start,
                end_time=start + timedelta(hours=10),
                duration=600,
                total_amount=total_amount,
                paid_amount=paid_amount,
                is_paid=is_paid,
                status=status,
            )
            for index, (amount, method, payment_status) in enumerate(payments):
                reservation.payments.append(ReservationPayment(
                    amount=amount,
                    payment_method=method,
                    status=payment_status,
                    transaction_id=f"TRX-SEED-{counter['value']}-{index}",
                ))
            session.add(reservation)
            await session.commit()
            return reservation.id
    return _make_reservation


@pytest.fixture
def fetch_reservation(session_factory):
    async def _fetch(reservation_id):
        async with session_factory() as session:
            return await load_reservation(session, reservation_id)
    return _fetch
