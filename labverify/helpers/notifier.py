import json
import uuid
from datetime import datetime
from pathlib import Path

from labverify.commons.logger import logger
from labverify.domain.models import TestOrder


def finalized_event(order: TestOrder) -> dict:
    return {
        "event": "order_finalized",
        "order_id": order.id,
        "order_number": order.order_number,
        "test_code": order.test_code,
        "patient_id": order.patient.id,
        "verified_by": order.verified_by,
        "verified_at": order.verified_at.isoformat() if order.verified_at else None,
        "verified_with_override": order.verified_with_override,
        "critical": [e.parameter_id for e in order.entries() if e.classification.is_critical],
    }


class FileNotifier:
    """Deja un JSON por orden finalizada en el outbox (impresión / notificación)."""

    def __init__(self, outbox: str, pattern: str = "finalized_{timestamp}_{uuid}.json"):
        self.outbox = Path(outbox)
        self.outbox.mkdir(parents=True, exist_ok=True)
        self.pattern = pattern

    def order_finalized(self, order: TestOrder) -> str:
        fname = self.pattern.format(
            timestamp=datetime.now().strftime("%Y%m%d%H%M%S"), uuid=uuid.uuid4().hex[:8]
        )
        p = self.outbox / fname
        p.write_text(json.dumps(finalized_event(order), ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info(f"Notificación de orden {order.id} escrita en {p}")
        return str(p)


class LogNotifier:
    def order_finalized(self, order: TestOrder) -> None:
        logger.info(f"Orden finalizada: {finalized_event(order)}")


def build_notifier(notifications_cfg, paths_cfg):
    if notifications_cfg.type == "file":
        return FileNotifier(paths_cfg.outbox, notifications_cfg.file.filename_pattern)
    return LogNotifier()
