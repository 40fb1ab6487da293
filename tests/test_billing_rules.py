"""
Unit tests for invoice arithmetic and transaction references.
"""

import re
from datetime import datetime

import pytest
from evcenter.services.errors import ServiceError
from evcenter.services.invoice_service import calculate_invoice_totals
from evcenter.services.transaction_service import generate_transaction_ref


def test_invoice_totals_with_discount():
    totals = calculate_invoice_totals(1000000, 500000, 100000, 10, tax_rate=10)
    assert totals["subtotal"] == 1600000
    assert totals["discount_amount"] == 160000
    assert totals["taxable_amount"] == 1440000
    assert totals["tax_amount"] == 144000
    assert totals["total_amount"] == 1584000
    assert totals["remaining_amount"] == 1584000


def test_invoice_totals_additional_charges():
    charges = [
        {"description": "Phí xử lý pin", "amount": 50000, "type": "disposal_fee"},
        {"description": "Khuyến mãi", "amount": 20000, "type": "discount"},
    ]
    totals = calculate_invoice_totals(300000, 0, 50000, additional_charges=charges, tax_rate=10, paid_amount=100000)
    assert totals["additional_total"] == 30000
    assert totals["taxable_amount"] == 380000
    assert totals["tax_amount"] == 38000
    assert totals["total_amount"] == 418000
    assert totals["remaining_amount"] == 318000


def test_invoice_totals_round_half_up():
    totals = calculate_invoice_totals(105, 0, 0, discount_percentage=10, tax_rate=10)
    # discount 10.5 -> 11, taxable 94, tax 9.4 -> 9
    assert totals["discount_amount"] == 11
    assert totals["tax_amount"] == 9
    assert totals["total_amount"] == 103


@pytest.mark.parametrize("discount", [-1, 101])
def test_invoice_discount_out_of_range(discount):
    with pytest.raises(ServiceError) as exc_info:
        calculate_invoice_totals(100, 0, 0, discount_percentage=discount)
    assert exc_info.value.error_code == "VALIDATION_ERROR"


@pytest.mark.parametrize(
    "transaction_type,prefix",
    [("cash", "CASH"), ("card", "CARD"), ("bank_transfer", "TRF"), ("vnpay", "VNP"), ("barter", "TXN")],
)
def test_transaction_ref_prefixes(transaction_type, prefix):
    ref = generate_transaction_ref(transaction_type, now=datetime(2024, 12, 18))
    assert re.match(rf"^{prefix}241218\d{{6}}[A-Z0-9]{{4}}$", ref)
