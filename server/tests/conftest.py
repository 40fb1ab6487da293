"""Pytest configuration and fixtures."""

from datetime import date, timedelta
from itertools import count
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from evcenter.main import app
from evcenter.models import Appointment, Part, Service, User, Vehicle
from evcenter.models.appointment import AppointmentPriority, AppointmentStatus
from evcenter.models.base import Base
from evcenter.models.part import PartCategory
from evcenter.models.service import ServiceCategory
from evcenter.models.user import UserRole
from evcenter.services import appointment_service, invoice_service, reception_service
from evcenter.services.appointment_workflow import core_status_for
from evcenter.services.database import get_db
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_sequence = count(1)


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """In-memory database shared by every connection of one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth(user: User) -> dict:
    """Headers identifying ``user`` to the API."""
    return {"X-User-Id": str(user.id)}


# ============================================================================
# Users
# ============================================================================


async def _make_user(db: AsyncSession, role: UserRole, first_name: str, **kwargs) -> User:
    n = next(_sequence)
    user = User(
        email=f"{role.value}{n}@evcenter.vn",
        phone=kwargs.pop("phone", None),
        first_name=first_name,
        last_name=kwargs.pop("last_name", "Nguyễn"),
        role=role,
        **kwargs,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.ADMIN, "Quản")


@pytest_asyncio.fixture
async def staff(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.STAFF, "Lan")


@pytest_asyncio.fixture
async def technician(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.TECHNICIAN, "Minh")


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession) -> User:
    return await _make_user(
        db_session,
        UserRole.CUSTOMER,
        "An",
        phone="0901234567",
        street="123 Lê Lợi",
        ward="Phường Bến Nghé",
        district="Quận 1",
        city="TP. Hồ Chí Minh",
    )


@pytest.fixture
def user_factory(db_session: AsyncSession):
    async def factory(role: UserRole = UserRole.CUSTOMER, first_name: str = "Bình", **kwargs) -> User:
        return await _make_user(db_session, role, first_name, **kwargs)

    return factory


# ============================================================================
# Vehicles, catalog, parts
# ============================================================================


@pytest.fixture
def vehicle_factory(db_session: AsyncSession):
    async def factory(owner: User, **kwargs) -> Vehicle:
        n = next(_sequence)
        vehicle = Vehicle(
            owner_id=owner.id,
            vin=kwargs.pop("vin", f"RLLVF8EV5PH{n:06d}"),
            license_plate=kwargs.pop("license_plate", f"51K-{n:03d}.45"),
            make=kwargs.pop("make", "VinFast"),
            model=kwargs.pop("model", "VF 8"),
            year=kwargs.pop("year", 2023),
            battery_type="lfp",
            battery_capacity_kwh=82.0,
            current_mileage=kwargs.pop("current_mileage", 12000),
            **kwargs,
        )
        db_session.add(vehicle)
        await db_session.commit()
        return vehicle

    return factory


@pytest_asyncio.fixture
async def vehicle(vehicle_factory, customer: User) -> Vehicle:
    return await vehicle_factory(customer)


@pytest_asyncio.fixture
async def service(db_session: AsyncSession) -> Service:
    service = Service(
        code="BAT-CHECK",
        name="Kiểm tra pin cao áp",
        category=ServiceCategory.BATTERY,
        base_price=500000,
        estimated_duration=90,
        warranty_days=90,
    )
    db_session.add(service)
    await db_session.commit()
    return service


@pytest.fixture
def part_factory(db_session: AsyncSession):
    async def factory(current_stock: int = 10, retail_price: int = 200000, **kwargs) -> Part:
        n = next(_sequence)
        part = Part(
            part_number=kwargs.pop("part_number", f"VF-PART-{n:04d}"),
            name=kwargs.pop("name", f"Cầu chì cao áp {n}"),
            category=kwargs.pop("category", PartCategory.ELECTRONICS),
            brand="VinFast",
            cost_price=kwargs.pop("cost_price", retail_price // 2),
            retail_price=retail_price,
            current_stock=current_stock,
            reserved_stock=kwargs.pop("reserved_stock", 0),
            used_stock=0,
            min_stock_level=kwargs.pop("min_stock_level", 2),
            max_stock_level=kwargs.pop("max_stock_level", 50),
            reorder_point=kwargs.pop("reorder_point", 3),
            compatible_makes=["VinFast"],
            **kwargs,
        )
        db_session.add(part)
        await db_session.commit()
        return part

    return factory


# ============================================================================
# Appointments
# ============================================================================


@pytest.fixture
def appointment_factory(db_session: AsyncSession, customer: User, vehicle: Vehicle):
    """Appointment placed directly in ``status`` for the default customer."""

    async def factory(
        status: AppointmentStatus = AppointmentStatus.PENDING,
        technician: User = None,
        service: Service = None,
        scheduled_date: date = None,
        scheduled_time: str = "09:00",
        priority: AppointmentPriority = AppointmentPriority.NORMAL,
        owner: User = None,
        owner_vehicle: Vehicle = None,
    ) -> Appointment:
        n = next(_sequence)
        appointment = Appointment(
            appointment_number=f"APT{n:09d}",
            customer_id=(owner or customer).id,
            vehicle_id=(owner_vehicle or vehicle).id,
            service_id=service.id if service else None,
            scheduled_date=scheduled_date or date.today() + timedelta(days=1),
            scheduled_time=scheduled_time,
            priority=priority,
            status=status,
            core_status=core_status_for(status),
            assigned_technician_id=technician.id if technician else None,
            workflow_history=[],
        )
        db_session.add(appointment)
        await db_session.commit()
        return appointment

    return factory


@pytest.fixture
def reception_factory(db_session: AsyncSession, appointment_factory, technician: User):
    """Reception created by ``technician`` for a fresh arrived appointment, submitted to staff."""

    async def factory(parts=(), services=(), submit: bool = True, **appointment_kwargs):
        appointment = await appointment_factory(
            status=AppointmentStatus.CUSTOMER_ARRIVED, technician=technician, **appointment_kwargs
        )
        reception = await reception_service.create_reception(
            db_session,
            appointment.id,
            technician,
            {
                "services": [{"service_id": s.id, "quantity": 1} for s in services],
                "parts": [{"part_id": p.id, "quantity": qty} for p, qty in parts],
                "estimated_service_time": 90,
            },
        )
        if submit:
            reception = await reception_service.submit_reception(db_session, reception.id, technician)
        return reception

    return factory


@pytest_asyncio.fixture
async def completed_appointment(reception_factory, part_factory, service, technician, staff, db_session) -> Appointment:
    """Reception with one service and 2 x 200 000 parts, approved, worked for 90 minutes."""

    part = await part_factory(current_stock=5, retail_price=200000)
    reception = await reception_factory(services=[service], parts=[(part, 2)])
    await reception_service.review_reception(db_session, reception.id, staff, "approved")
    await appointment_service.start_work(db_session, reception.appointment_id, technician)
    return await appointment_service.complete_appointment(
        db_session, reception.appointment_id, technician, notes="Đã thay cầu chì", actual_service_time=90
    )


@pytest_asyncio.fixture
async def invoice(completed_appointment, staff, db_session):
    """Invoice of ``completed_appointment`` with 10% discount and a 50 000 disposal fee."""

    return await invoice_service.generate_invoice(
        db_session,
        completed_appointment.id,
        staff,
        discount_percentage=10,
        additional_charges=[{"description": "Phí xử lý pin thải", "amount": 50000, "type": "disposal_fee"}],
    )
