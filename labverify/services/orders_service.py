import random
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from labverify.commons.lifecycle import OrderLifecycle
from labverify.commons.logger import logger
from labverify.domain.models import OrderStatus, Patient, ResultEntry, TestOrder
from labverify.services.results_service import check_version, utcnow


def generate_order_number(now: datetime, rnd: Optional[random.Random] = None) -> str:
    """LAB + yymmdd + 4 dígitos aleatorios. Ej: LAB2508150042"""
    rnd = rnd or random
    return f"LAB{now.strftime('%y%m%d')}{rnd.randrange(10000):04d}"


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # fechas sin zona se asumen UTC
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def generate_sample_barcode(order_number: str, test_code: str) -> str:
    return f"{order_number}-{test_code[-4:].upper()}"


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class OrdersService:
    def __init__(
        self,
        store,
        catalog,
        lifecycle: Optional[OrderLifecycle] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        self.store = store
        self.catalog = catalog
        self.lifecycle = lifecycle or OrderLifecycle()
        self.clock = clock
        self.id_factory = id_factory

    def create_order(
        self,
        patient: Patient,
        test_code: str,
        ordered_by: Optional[str] = None,
        order_number: Optional[str] = None,
        sample_barcode: Optional[str] = None,
    ) -> TestOrder:
        test = self.catalog.get_test(test_code)
        now = self.clock()
        order_number = order_number or generate_order_number(now)
        params = test.active_parameters()
        order = TestOrder(
            id=self.id_factory(),
            order_number=order_number,
            test_code=test.code,
            patient=patient,
            parameter_ids=[p.id for p in params],
            results={p.id: ResultEntry(parameter_id=p.id) for p in params},
            status=OrderStatus.ORDERED,
            ordered_at=now,
            ordered_by=ordered_by,
            sample_barcode=sample_barcode or generate_sample_barcode(order_number, test.code),
        )
        self.store.add(order)
        logger.info(f"Orden {order.order_number} creada ({test.code}, {len(params)} parámetros)")
        return order

    def collect_sample(
        self, order_id: str, collected_by: Optional[str] = None, expected_version: Optional[int] = None
    ) -> TestOrder:
        order = self.store.get(order_id)
        loaded_version = order.version
        check_version(order, expected_version)
        self.lifecycle.collect_sample(order, self.clock(), collected_by)
        return self.store.save(order, loaded_version)

    def cancel(
        self,
        order_id: str,
        actor_id: Optional[str] = None,
        reason: str = "",
        expected_version: Optional[int] = None,
    ) -> TestOrder:
        order = self.store.get(order_id)
        loaded_version = order.version
        check_version(order, expected_version)
        self.lifecycle.cancel(order, self.clock(), actor_id, reason)
        return self.store.save(order, loaded_version)

    def list_orders(
        self,
        patient_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TestOrder]:
        start, end = _aware(start), _aware(end)
        out = []
        for o in self.store.list_all():
            if patient_id and o.patient.id != patient_id:
                continue
            if status and o.status is not OrderStatus(status):
                continue
            if start and (o.ordered_at is None or _aware(o.ordered_at) < start):
                continue
            if end and (o.ordered_at is None or _aware(o.ordered_at) > end):
                continue
            out.append(o)
        # más recientes primero
        return sorted(out, key=lambda o: _aware(o.ordered_at) or _EPOCH, reverse=True)
