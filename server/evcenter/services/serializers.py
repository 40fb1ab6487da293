"""ORM -> JSON-ready dict conversion shared by routes, cache and scripts."""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from evcenter.models import (
    Appointment,
    ConflictRequest,
    Invoice,
    Part,
    PartConflict,
    PartRequest,
    Service,
    ServiceReception,
    Transaction,
    User,
    Vehicle,
)
from evcenter.utils.vietnamese import format_vnd


def _value(enum_or_str: Any) -> Any:
    return getattr(enum_or_str, "value", enum_or_str)


def _iso(value: Optional[Any]) -> Optional[str]:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "phone": user.phone,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "role": _value(user.role),
        "is_active": user.is_active,
        "address": {
            "street": user.street,
            "ward": user.ward,
            "district": user.district,
            "city": user.city,
        },
    }


def serialize_vehicle(vehicle: Vehicle) -> Dict[str, Any]:
    return {
        "id": vehicle.id,
        "owner_id": vehicle.owner_id,
        "vin": vehicle.vin,
        "license_plate": vehicle.license_plate,
        "make": vehicle.make,
        "model": vehicle.model,
        "year": vehicle.year,
        "color": vehicle.color,
        "battery_type": vehicle.battery_type,
        "battery_capacity_kwh": vehicle.battery_capacity_kwh,
        "current_mileage": vehicle.current_mileage,
        "last_service_date": _iso(vehicle.last_service_date),
    }


def serialize_service(service: Service) -> Dict[str, Any]:
    return {
        "id": service.id,
        "code": service.code,
        "name": service.name,
        "description": service.description,
        "category": _value(service.category),
        "base_price": service.base_price,
        "base_price_formatted": format_vnd(service.base_price),
        "estimated_duration": service.estimated_duration,
        "warranty_days": service.warranty_days,
        "is_active": service.is_active,
    }


def serialize_part(part: Part) -> Dict[str, Any]:
    return {
        "id": part.id,
        "part_number": part.part_number,
        "name": part.name,
        "description": part.description,
        "category": _value(part.category),
        "brand": part.brand,
        "pricing": {
            "cost": part.cost_price,
            "retail": part.retail_price,
            "retail_formatted": format_vnd(part.retail_price),
        },
        "inventory": {
            "current_stock": part.current_stock,
            "reserved_stock": part.reserved_stock,
            "used_stock": part.used_stock,
            "available_stock": part.available_stock,
            "min_stock_level": part.min_stock_level,
            "max_stock_level": part.max_stock_level,
            "reorder_point": part.reorder_point,
            "needs_reorder": part.needs_reorder,
            "last_restocked_at": _iso(part.last_restocked_at),
        },
        "compatible_makes": part.compatible_makes or [],
        "warranty_months": part.warranty_months,
        "is_active": part.is_active,
    }


def serialize_appointment(appointment: Appointment) -> Dict[str, Any]:
    return {
        "id": appointment.id,
        "appointment_number": appointment.appointment_number,
        "customer_id": appointment.customer_id,
        "vehicle_id": appointment.vehicle_id,
        "service_id": appointment.service_id,
        "scheduled_date": _iso(appointment.scheduled_date),
        "scheduled_time": appointment.scheduled_time,
        "priority": _value(appointment.priority),
        "status": _value(appointment.status),
        "core_status": _value(appointment.core_status),
        "reason_code": appointment.reason_code,
        "assigned_technician_id": appointment.assigned_technician_id,
        "payment_status": _value(appointment.payment_status),
        "customer_notes": appointment.customer_notes,
        "staff_rejection_reason": appointment.staff_rejection_reason,
        "cancellation_reason": appointment.cancellation_reason,
        "workflow_history": list(appointment.workflow_history or []),
        "completed_at": _iso(appointment.completed_at),
        "created_at": _iso(appointment.created_at),
    }


def serialize_reception(reception: ServiceReception) -> Dict[str, Any]:
    return {
        "id": reception.id,
        "reception_number": reception.reception_number,
        "appointment_id": reception.appointment_id,
        "customer_id": reception.customer_id,
        "vehicle_id": reception.vehicle_id,
        "received_by": reception.received_by,
        "status": _value(reception.status),
        "vehicle_condition": dict(reception.vehicle_condition or {}),
        "customer_complaints": reception.customer_complaints,
        "special_instructions": reception.special_instructions,
        "estimated_service_time": reception.estimated_service_time,
        "actual_service_time": reception.actual_service_time,
        "estimated_completion_time": _iso(reception.estimated_completion_time),
        "recommended_services": [
            {
                "id": item.id,
                "service_id": item.service_id,
                "service_name": item.service_name,
                "category": item.category,
                "quantity": item.quantity,
                "reason": item.reason,
                "unit_price": item.unit_price,
                "estimated_cost": item.estimated_cost,
                "customer_approved": item.customer_approved,
                "is_completed": item.is_completed,
            }
            for item in reception.services
        ],
        "requested_parts": [
            {
                "id": item.id,
                "part_id": item.part_id,
                "part_name": item.part_name,
                "part_number": item.part_number,
                "quantity": item.quantity,
                "reason": item.reason,
                "unit_price": item.unit_price,
                "estimated_cost": item.estimated_cost,
                "is_approved": item.is_approved,
                "is_available": item.is_available,
                "available_quantity": item.available_quantity,
                "shortfall": item.shortfall,
            }
            for item in reception.parts
        ],
        "submission_status": {
            "submitted_to_staff": reception.submitted_to_staff,
            "submitted_at": _iso(reception.submitted_at),
            "submitted_by": reception.submitted_by,
            "staff_review_status": _value(reception.staff_review_status),
            "reviewed_by": reception.reviewed_by,
            "reviewed_at": _iso(reception.reviewed_at),
            "review_notes": reception.review_notes,
            "approval_decision": reception.approval_decision,
        },
        "has_conflict": reception.has_conflict,
        "can_be_approved": reception.can_be_approved(),
        "workflow_history": list(reception.workflow_history or []),
        "created_at": _iso(reception.created_at),
    }


def serialize_part_request(part_request: PartRequest) -> Dict[str, Any]:
    return {
        "id": part_request.id,
        "appointment_id": part_request.appointment_id,
        "requested_by": part_request.requested_by,
        "status": _value(part_request.status),
        "reason": part_request.reason,
        "items": [
            {
                "id": item.id,
                "part_id": item.part_id,
                "quantity": item.quantity,
                "is_approved": item.is_approved,
            }
            for item in part_request.items
        ],
        "reviewed_by": part_request.reviewed_by,
        "reviewed_at": _iso(part_request.reviewed_at),
        "review_notes": part_request.review_notes,
    }


def serialize_conflict_request(request: ConflictRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "request_type": _value(request.request_type),
        "request_id": request.request_id,
        "appointment_id": request.appointment_id,
        "appointment_number": request.appointment_number,
        "requested_quantity": request.requested_quantity,
        "priority": request.priority,
        "scheduled_date": _iso(request.scheduled_date),
        "scheduled_time": request.scheduled_time,
        "requested_at": _iso(request.requested_at),
        "customer_id": request.customer_id,
        "technician_id": request.technician_id,
        "staff_review_status": request.staff_review_status,
        "status": _value(request.status),
        "auto_approved": request.auto_approved,
        "can_be_fulfilled": request.can_be_fulfilled,
        "allocation_priority": request.allocation_priority,
        "resolution_notes": request.resolution_notes,
    }


def serialize_conflict(conflict: PartConflict) -> Dict[str, Any]:
    return {
        "id": conflict.id,
        "conflict_number": conflict.conflict_number,
        "part_id": conflict.part_id,
        "part_name": conflict.part_name,
        "part_number": conflict.part_number,
        "available_stock": conflict.available_stock,
        "total_requested": conflict.total_requested,
        "shortfall": conflict.shortfall,
        "status": _value(conflict.status),
        "resolved_by": conflict.resolved_by,
        "resolved_at": _iso(conflict.resolved_at),
        "resolution_notes": conflict.resolution_notes,
        "requests": [serialize_conflict_request(r) for r in conflict.requests],
        "created_at": _iso(conflict.created_at),
    }


def serialize_invoice(invoice: Invoice) -> Dict[str, Any]:
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "appointment_id": invoice.appointment_id,
        "reception_id": invoice.reception_id,
        "customer_id": invoice.customer_id,
        "vehicle_id": invoice.vehicle_id,
        "line_items": [
            {
                "id": item.id,
                "kind": _value(item.kind),
                "reference_id": item.reference_id,
                "description": item.description,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
            }
            for item in invoice.line_items
        ],
        "additional_charges": list(invoice.additional_charges or []),
        "totals": {
            "services_total": invoice.services_total,
            "parts_total": invoice.parts_total,
            "labor_total": invoice.labor_total,
            "additional_total": invoice.additional_total,
            "subtotal": invoice.subtotal,
            "discount_percentage": invoice.discount_percentage,
            "discount_amount": invoice.discount_amount,
            "taxable_amount": invoice.taxable_amount,
            "tax_rate": invoice.tax_rate,
            "tax_amount": invoice.tax_amount,
            "total_amount": invoice.total_amount,
            "total_formatted": format_vnd(invoice.total_amount),
        },
        "payment_info": {
            "method": _value(invoice.payment_method),
            "payment_status": _value(invoice.payment_status),
            "due_date": _iso(invoice.due_date),
            "paid_amount": invoice.paid_amount,
            "remaining_amount": invoice.remaining_amount,
            "payment_date": _iso(invoice.payment_date),
            "transaction_ref": invoice.transaction_ref,
        },
        "customer_info": invoice.customer_info,
        "vehicle_info": invoice.vehicle_info,
        "status": _value(invoice.status),
        "sent_at": _iso(invoice.sent_at),
        "customer_viewed_at": _iso(invoice.customer_viewed_at),
        "revision_number": invoice.revision_number,
        "original_invoice_id": invoice.original_invoice_id,
        "revision_reason": invoice.revision_reason,
        "notes": invoice.notes,
        "is_overdue": invoice.is_overdue(),
        "created_at": _iso(invoice.created_at),
    }


def serialize_transaction(transaction: Transaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "transaction_ref": transaction.transaction_ref,
        "transaction_type": _value(transaction.transaction_type),
        "purpose": _value(transaction.purpose),
        "user_id": transaction.user_id,
        "appointment_id": transaction.appointment_id,
        "invoice_id": transaction.invoice_id,
        "original_transaction_id": transaction.original_transaction_id,
        "amount": transaction.amount,
        "paid_amount": transaction.paid_amount,
        "currency": transaction.currency,
        "description": transaction.description,
        "status": _value(transaction.status),
        "processed_by": transaction.processed_by,
        "processed_at": _iso(transaction.processed_at),
        "expires_at": _iso(transaction.expires_at),
        "error_code": transaction.error_code,
        "error_message": transaction.error_message,
        "notes": transaction.notes,
        "created_at": _iso(transaction.created_at),
    }


def serialize_many(items: List[Any], serializer) -> List[Dict[str, Any]]:
    return [serializer(item) for item in items]
