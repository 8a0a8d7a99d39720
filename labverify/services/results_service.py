# labverify/services/results_service.py
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from labverify.commons.errors import ConcurrencyError, LabError
from labverify.commons.lifecycle import OrderLifecycle
from labverify.commons.logger import logger
from labverify.domain.models import Actor, OrderStatus, TestOrder
from labverify.services.result_set import ResultSet
from labverify.validation.validators import validate_results_or_raise


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_version(order: TestOrder, expected_version: Optional[int]):
    if expected_version is not None and order.version != expected_version:
        raise ConcurrencyError(order.id, expected_version, order.version)


class ResultsService:
    """Carga, borrador y verificación de resultados de una orden.

    Cada llamada trabaja sobre una copia recién leída del store y escribe una
    sola vez al final: si algo falla, el store queda como estaba.
    """

    def __init__(
        self,
        store,
        catalog,
        notifier=None,
        lifecycle: Optional[OrderLifecycle] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.catalog = catalog
        self.notifier = notifier
        self.lifecycle = lifecycle or OrderLifecycle()
        self.clock = clock

    def load_order(self, order_id: str) -> TestOrder:
        order = self.store.get(order_id)
        # recalcula clasificaciones a partir de los valores guardados
        ResultSet(order, self.catalog.parameters_for(order))
        return order

    def result_set(self, order: TestOrder) -> ResultSet:
        return ResultSet(order, self.catalog.parameters_for(order))

    def _apply(self, order: TestOrder, results: Iterable, comments: Optional[str]) -> ResultSet:
        inputs = validate_results_or_raise(results)
        rs = self.result_set(order)
        rs.apply(inputs)
        if comments is not None:
            order.comments = comments
        return rs

    def save_draft(
        self,
        order_id: str,
        results: Iterable,
        comments: Optional[str] = None,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> TestOrder:
        order = self.store.get(order_id)
        loaded_version = order.version
        check_version(order, expected_version)
        # antes de validar la entrada: el estado manda
        self.lifecycle.ensure_open(order)

        rs = self._apply(order, results, comments)
        try:
            self.lifecycle.save_draft(order, rs, self.clock(), actor_id)
        except LabError as ex:
            logger.warning(f"Borrador rechazado para orden {order_id}: {ex}")
            raise
        self.store.save(order, loaded_version)
        logger.info(f"Orden {order_id}: borrador guardado {rs.summary().as_dict()} (v{order.version})")
        return order

    def verify(
        self,
        order_id: str,
        results: Iterable,
        comments: Optional[str],
        actor: Actor,
        override_incomplete: bool = False,
        expected_version: Optional[int] = None,
    ) -> TestOrder:
        """Puerta de verificación: único camino hacia ``VERIFIED``.

        1) aplica los últimos valores  2) si la orden sigue en
        SAMPLE_COLLECTED guarda el borrador  3) completitud + override
        4) transición verify  5) persiste  6) notifica (sin rollback).
        """
        order = self.store.get(order_id)
        loaded_version = order.version
        check_version(order, expected_version)
        self.lifecycle.ensure_open(order)

        rs = self._apply(order, results, comments)
        now = self.clock()
        try:
            if order.status is OrderStatus.SAMPLE_COLLECTED:
                self.lifecycle.save_draft(order, rs, now, actor.id)
            self.lifecycle.verify(order, rs, actor, now, override_incomplete)
        except LabError as ex:
            logger.warning(f"Verificación rechazada para orden {order_id}: {ex}")
            raise
        if order.entered_by is None:
            order.entered_by, order.entered_at = actor.id, now
        self.store.save(order, loaded_version)
        logger.info(f"Orden {order_id}: verificada por {actor.id} {rs.summary().as_dict()}")

        self._notify(order)
        return order

    def _notify(self, order: TestOrder):
        if self.notifier is None:
            return
        try:
            self.notifier.order_finalized(order)
        except Exception as ex:
            # fire-and-forget: la verificación ya quedó persistida
            logger.exception(f"No se pudo notificar la orden {order.id}: {ex}")
