# labverify/commons/lifecycle.py
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from labverify.commons.errors import (
    IncompleteWithoutOverrideError,
    InvalidTransitionError,
    NotAuthorizedError,
    NothingToSaveError,
    TerminalStateError,
)
from labverify.commons.logger import logger
from labverify.domain.models import Actor, OrderStatus, TestOrder

S = OrderStatus

# Verified y Cancelled no tienen salidas
TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.ORDERED: frozenset({S.SAMPLE_COLLECTED, S.CANCELLED}),
    S.SAMPLE_COLLECTED: frozenset({S.RESULTS_DRAFT, S.CANCELLED}),
    S.RESULTS_DRAFT: frozenset({S.RESULTS_DRAFT, S.VERIFIED, S.CANCELLED}),
    S.VERIFIED: frozenset(),
    S.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


class OrderLifecycle:
    """Máquina de estados de una orden de examen.

    Cada método valida la guarda, modifica la orden en memoria y registra
    quién/cuándo. Persistir es tarea de quien llama; si una guarda falla la
    orden queda intacta.
    """

    def ensure_open(self, order: TestOrder):
        if order.status.is_terminal:
            raise TerminalStateError(order.id, order.status.value)

    def _ensure(self, order: TestOrder, target: OrderStatus):
        self.ensure_open(order)
        if not can_transition(order.status, target):
            raise InvalidTransitionError(order.id, order.status.value, target.value)

    def collect_sample(self, order: TestOrder, at: datetime, by: Optional[str] = None) -> TestOrder:
        # la toma de muestra la señala un colaborador externo; aquí solo se registra
        self._ensure(order, S.SAMPLE_COLLECTED)
        order.status = S.SAMPLE_COLLECTED
        order.sample_collected_at = at
        order.sample_collected_by = by
        logger.info(f"Orden {order.id}: muestra recolectada")
        return order

    def save_draft(self, order: TestOrder, result_set, at: datetime, by: Optional[str] = None) -> TestOrder:
        self._ensure(order, S.RESULTS_DRAFT)
        if not result_set.has_any_value():
            raise NothingToSaveError(f"Orden {order.id}: ingrese al menos un valor de resultado")
        order.status = S.RESULTS_DRAFT
        order.entered_by = by
        order.entered_at = at
        return order

    def verify(
        self,
        order: TestOrder,
        result_set,
        actor: Actor,
        at: datetime,
        override_incomplete: bool = False,
    ) -> TestOrder:
        self._ensure(order, S.VERIFIED)
        if not actor.can_verify:
            raise NotAuthorizedError(f"Usuario {actor.id} no puede verificar resultados")

        missing = result_set.missing_parameters()
        if missing and override_incomplete is not True:
            raise IncompleteWithoutOverrideError(order.id, missing)
        if missing:
            logger.warning(f"Orden {order.id}: verificada con override por {actor.id}, faltan {missing}")

        order.status = S.VERIFIED
        order.verified_by = actor.id
        order.verified_at = at
        order.verified_with_override = bool(missing)
        order.missing_at_verification = list(missing)
        return order

    def cancel(self, order: TestOrder, at: datetime, by: Optional[str] = None, reason: str = "") -> TestOrder:
        self._ensure(order, S.CANCELLED)
        order.status = S.CANCELLED
        order.cancelled_at = at
        order.cancelled_by = by
        order.cancel_reason = reason or ""
        logger.info(f"Orden {order.id}: cancelada por {by or '-'}")
        return order
