"""
Unit tests for the safe accessors.
"""

from types import SimpleNamespace

from evcenter.utils.safe_helpers import (
    safe_date_format,
    safe_get,
    safe_get_customer_info,
    safe_get_service_names,
    safe_get_vehicle_info,
    safe_join,
    safe_number_format,
)
from evcenter.utils.vietnamese import format_vietnamese_date, format_vnd


def test_safe_get_nested_paths():
    payload = {"customer": {"address": {"city": "Hà Nội"}}, "items": [{"name": "Pin"}]}
    assert safe_get(payload, "customer.address.city") == "Hà Nội"
    assert safe_get(payload, "items.0.name") == "Pin"
    assert safe_get(payload, "items.5.name", "none") == "none"
    assert safe_get(payload, "customer.phone", "N/A") == "N/A"
    assert safe_get(None, "anything", 1) == 1


def test_safe_get_reads_attributes():
    obj = SimpleNamespace(vehicle=SimpleNamespace(make="VinFast"))
    assert safe_get(obj, "vehicle.make") == "VinFast"
    assert safe_get(obj, "vehicle.model", "?") == "?"


def test_safe_join():
    assert safe_join(["a", None, "b"]) == "a, b"
    assert safe_join([]) == "No items"
    assert safe_join("abc") == "No items"
    assert safe_join([None, ""], fallback="-") == "-"


def test_service_names_empty():
    assert safe_get_service_names([]) == "No services"
    assert safe_get_service_names(None) == "No services"
    assert safe_get_service_names({"name": "x"}) == "No services"


def test_service_names_from_mixed_shapes():
    services = [
        {"serviceId": {"name": "Kiểm tra pin"}},
        {"service_name": "Bảo dưỡng"},
        SimpleNamespace(service=SimpleNamespace(name="Sửa cổng sạc")),
        {"unexpected": True},
    ]
    assert safe_get_service_names(services) == "Kiểm tra pin, Bảo dưỡng, Sửa cổng sạc, Unknown Service"


def test_safe_number_format():
    assert safe_number_format(1500000, format_vnd) == "1.500.000 ₫"
    assert safe_number_format(None, format_vnd) == "0"
    assert safe_number_format("12", format_vnd, "-") == "-"
    assert safe_number_format(float("nan"), format_vnd) == "0"


def test_safe_date_format():
    assert safe_date_format("2024-12-18", format_vietnamese_date) == "18/12/2024"
    assert safe_date_format(None, format_vietnamese_date) == "Invalid date"


def test_vehicle_info_defaults():
    assert safe_get_vehicle_info(None) == {
        "make": "Unknown",
        "model": "Vehicle",
        "year": "N/A",
        "license_plate": "N/A",
    }
    info = safe_get_vehicle_info({"make": "VinFast", "model": "VF 8", "year": 2023, "licensePlate": "51K-123.45"})
    assert info["license_plate"] == "51K-123.45"


def test_customer_info():
    info = safe_get_customer_info({"firstName": "An", "lastName": "Lê", "email": "an@example.com"})
    assert info["full_name"] == "An Lê"
    assert info["phone"] == "No phone"
    assert safe_get_customer_info(None)["full_name"] == "Unknown Customer"
