import random
import re
from datetime import datetime, timedelta, timezone

import pytest

from labverify.commons.errors import NotFoundError, ValidationError
from labverify.domain.models import OrderStatus, Patient
from labverify.helpers.catalog import TestCatalog
from labverify.helpers.file_store import FileOrderStore
from labverify.services.orders_service import (
    OrdersService,
    generate_order_number,
    generate_sample_barcode,
)

T0 = datetime(2025, 8, 15, 12, 0, tzinfo=timezone.utc)

CATALOG = {
    "tests": [
        {
            "code": "cbc",
            "name": "Hemograma",
            "parameters": [
                {"id": "PLT", "name": "Plaquetas", "normal_range_male": "150-400", "display_order": 3},
                {"id": "HGB", "name": "Hemoglobina", "normal_range_male": "13.5-17.5", "display_order": 1},
                {"id": "ESR", "name": "VSG", "normal_range_male": "0-15", "display_order": 2, "is_active": False},
                {"id": "WBC", "name": "Leucocitos", "normal_range_male": "4.5-11", "display_order": 2},
            ],
        },
        {"code": "GLU", "name": "Glucosa", "parameters": [{"id": "GLU", "name": "Glucosa"}]},
    ]
}


class StepClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(hours=1)
        return current


def make_service(tmp_path, clock=None):
    ids = iter(f"ord{i}" for i in range(1, 100))
    return OrdersService(
        FileOrderStore(str(tmp_path / "orders")),
        TestCatalog(CATALOG),
        clock=clock or (lambda: T0),
        id_factory=lambda: next(ids),
    )


def test_order_number_format():
    number = generate_order_number(T0, random.Random(7))
    assert re.fullmatch(r"LAB250815\d{4}", number)


def test_sample_barcode_uses_last_four_of_test_code():
    assert generate_sample_barcode("LAB2508150001", "lipid") == "LAB2508150001-IPID"
    assert generate_sample_barcode("LAB2508150001", "cbc") == "LAB2508150001-CBC"


def test_create_order_attaches_active_parameters_in_display_order(tmp_path):
    svc = make_service(tmp_path)
    order = svc.create_order(Patient("p1", "Ana", "Female"), "cbc", ordered_by="dr.perez")
    assert order.parameter_ids == ["HGB", "WBC", "PLT"]
    assert set(order.results) == {"HGB", "WBC", "PLT"}
    assert order.status is OrderStatus.ORDERED
    assert order.ordered_at == T0 and order.ordered_by == "dr.perez"
    assert order.sample_barcode == f"{order.order_number}-CBC"
    assert order.version == 1
    assert svc.store.get(order.id).parameter_ids == ["HGB", "WBC", "PLT"]


def test_create_order_keeps_given_numbers(tmp_path):
    svc = make_service(tmp_path)
    order = svc.create_order(Patient("p1"), "GLU", order_number="LAB-X1", sample_barcode="BC-1")
    assert order.order_number == "LAB-X1"
    assert order.sample_barcode == "BC-1"


def test_create_order_unknown_test(tmp_path):
    with pytest.raises(NotFoundError):
        make_service(tmp_path).create_order(Patient("p1"), "NOPE")


def test_collect_sample_and_cancel(tmp_path):
    svc = make_service(tmp_path)
    order = svc.create_order(Patient("p1"), "GLU")
    collected = svc.collect_sample(order.id, "enfermera")
    assert collected.status is OrderStatus.SAMPLE_COLLECTED
    assert collected.sample_collected_by == "enfermera"
    cancelled = svc.cancel(order.id, "dr.perez", "muestra coagulada")
    assert cancelled.status is OrderStatus.CANCELLED
    stored = svc.store.get(order.id)
    assert stored.cancel_reason == "muestra coagulada"
    assert stored.version == 3


def test_list_orders_filters_and_sorting(tmp_path):
    svc = make_service(tmp_path, StepClock(T0))
    a = svc.create_order(Patient("p1"), "GLU")  # T0
    b = svc.create_order(Patient("p2"), "GLU")  # T0 + 1h
    c = svc.create_order(Patient("p1"), "cbc")  # T0 + 2h
    svc.collect_sample(c.id)

    assert [o.id for o in svc.list_orders()] == [c.id, b.id, a.id]
    assert [o.id for o in svc.list_orders(patient_id="p1")] == [c.id, a.id]
    assert [o.id for o in svc.list_orders(status=OrderStatus.SAMPLE_COLLECTED)] == [c.id]
    assert [o.id for o in svc.list_orders(status="ordered")] == [b.id, a.id]
    # fechas sin zona se interpretan como UTC
    start = datetime(2025, 8, 15, 12, 30)
    assert [o.id for o in svc.list_orders(start=start)] == [c.id, b.id]
    assert [o.id for o in svc.list_orders(start=start, end=T0 + timedelta(hours=1))] == [b.id]


def test_store_rejects_duplicate_and_bad_ids(tmp_path):
    svc = make_service(tmp_path)
    order = svc.create_order(Patient("p1"), "GLU")
    with pytest.raises(ValidationError):
        svc.store.add(order)
    with pytest.raises(NotFoundError):
        svc.store.get("../etc/passwd")


def test_catalog_rejects_inverted_critical_thresholds():
    bad = {"tests": [{"code": "X", "name": "X", "parameters": [{"id": "A", "name": "A", "critical_low": 10, "critical_high": 1}]}]}
    with pytest.raises(ValidationError):
        TestCatalog(bad)
