#!/usr/bin/env python3
"""
Initialize database with sample data for development/testing.
"""

import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add server directory to path
sys.path.append(str(Path(__file__).parent.parent / "server"))

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from evcenter.config import settings
from evcenter.models import Appointment, Part, Service, User, Vehicle
from evcenter.models.appointment import AppointmentPriority, AppointmentStatus
from evcenter.models.base import Base
from evcenter.models.part import PartCategory
from evcenter.models.service import ServiceCategory
from evcenter.models.user import UserRole
from evcenter.utils.timezone import vietnam_now
from evcenter.utils.vietnamese import generate_appointment_number


async def init_database():
    """Create tables and seed with sample data."""
    print("Initializing database...")

    engine = create_async_engine(settings.DATABASE_URL, echo=True)
    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    # Create tables
    print("Creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Seed sample data
    print("Seeding sample data...")
    async with async_session_maker() as db:
        admin = User(email="admin@evcenter.vn", first_name="Quản", last_name="Trị", role=UserRole.ADMIN)
        staff = User(
            email="staff@evcenter.vn", phone="0281234567", first_name="Lan", last_name="Nguyễn",
            role=UserRole.STAFF,
        )
        technician = User(
            email="tech@evcenter.vn", phone="0912345678", first_name="Minh", last_name="Trần",
            role=UserRole.TECHNICIAN,
        )
        customers = [
            User(
                email="an.le@example.com", phone="0901234567", first_name="An", last_name="Lê",
                street="12 Nguyễn Huệ", ward="Bến Nghé", district="Quận 1", city="TP. Hồ Chí Minh",
            ),
            User(
                email="binh.pham@example.com", phone="0387654321", first_name="Bình", last_name="Phạm",
                street="45 Tràng Tiền", district="Hoàn Kiếm", city="Hà Nội",
            ),
        ]
        users = [admin, staff, technician, *customers]
        db.add_all(users)
        await db.commit()

        vehicles = [
            Vehicle(
                owner_id=customers[0].id,
                vin="RLLVF8EV5PH000001",
                license_plate="51K-123.45",
                make="VinFast",
                model="VF 8",
                year=2023,
                color="Blue",
                battery_type="lfp",
                battery_capacity_kwh=87.7,
                current_mileage=15000,
            ),
            Vehicle(
                owner_id=customers[1].id,
                vin="RLLVF3EV2RH000002",
                license_plate="30H-678.90",
                make="VinFast",
                model="VF e34",
                year=2022,
                color="White",
                battery_type="nmc",
                battery_capacity_kwh=42,
                current_mileage=32000,
            ),
        ]
        db.add_all(vehicles)

        services = [
            Service(
                code="BAT-CHECK", name="Kiểm tra pin", category=ServiceCategory.BATTERY,
                base_price=300000, estimated_duration=60, warranty_days=90,
            ),
            Service(
                code="GEN-MAINT", name="Bảo dưỡng định kỳ", category=ServiceCategory.GENERAL,
                base_price=800000, estimated_duration=120, warranty_days=180,
            ),
            Service(
                code="CHG-PORT", name="Sửa cổng sạc", category=ServiceCategory.CHARGING,
                base_price=500000, estimated_duration=90, warranty_days=365,
            ),
        ]
        db.add_all(services)

        parts = [
            Part(
                part_number="BAT-CELL-LFP", name="Cell pin LFP", category=PartCategory.BATTERY,
                brand="CATL", cost_price=1500000, retail_price=2000000, current_stock=8,
                compatible_makes=["VinFast"], warranty_months=24,
            ),
            Part(
                part_number="CHG-CABLE-T2", name="Cáp sạc Type 2", category=PartCategory.CHARGING,
                cost_price=900000, retail_price=1200000, current_stock=3, reorder_point=5,
                warranty_months=12,
            ),
            Part(
                part_number="CONS-COOLANT", name="Dung dịch làm mát pin", category=PartCategory.CONSUMABLES,
                cost_price=150000, retail_price=250000, current_stock=40,
            ),
        ]
        db.add_all(parts)
        await db.commit()

        tomorrow = (vietnam_now() + timedelta(days=1)).date()
        first_number = generate_appointment_number(vietnam_now())
        second_number = first_number
        while second_number == first_number:
            second_number = generate_appointment_number(vietnam_now())

        appointments = [
            Appointment(
                appointment_number=first_number,
                customer_id=customers[0].id,
                vehicle_id=vehicles[0].id,
                service_id=services[0].id,
                scheduled_date=tomorrow,
                scheduled_time="09:00",
                priority=AppointmentPriority.HIGH,
                status=AppointmentStatus.CONFIRMED,
                assigned_technician_id=technician.id,
                customer_notes="Pin sạc chậm hơn bình thường",
                workflow_history=[],
            ),
            Appointment(
                appointment_number=second_number,
                customer_id=customers[1].id,
                vehicle_id=vehicles[1].id,
                service_id=services[1].id,
                scheduled_date=tomorrow,
                scheduled_time="14:30",
                status=AppointmentStatus.PENDING,
                workflow_history=[],
            ),
        ]
        db.add_all(appointments)
        await db.commit()

    print("Database initialized successfully!")
    print(f"Created {len(users)} users")
    print(f"Created {len(vehicles)} vehicles")
    print(f"Created {len(services)} services and {len(parts)} parts")
    print(f"Created {len(appointments)} appointments")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_database())
