# labverify/helpers/file_store.py
import json
import os
import re
import time
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from labverify.commons.errors import ConcurrencyError, NotFoundError, OrderLockedError, ValidationError
from labverify.domain.models import OrderStatus, Patient, ResultEntry, TestOrder

_SAFE_ID = re.compile(r"^[A-Za-z0-9_\-]+$")


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def order_to_dict(order: TestOrder) -> Dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "test_code": order.test_code,
        "patient": {"id": order.patient.id, "name": order.patient.name, "sex": order.patient.sex},
        "parameter_ids": list(order.parameter_ids),
        "results": [
            {
                "parameter_id": e.parameter_id,
                "value": e.value,
                "remarks": e.remarks,
                # informativo para consumidores; al cargar se recalcula
                "classification": e.classification.value,
                "is_abnormal": e.classification.is_abnormal,
                "is_critical": e.classification.is_critical,
            }
            for e in order.entries()
        ],
        "status": order.status.value,
        "ordered_at": _dt(order.ordered_at),
        "ordered_by": order.ordered_by,
        "sample_barcode": order.sample_barcode,
        "sample_collected_at": _dt(order.sample_collected_at),
        "sample_collected_by": order.sample_collected_by,
        "entered_by": order.entered_by,
        "entered_at": _dt(order.entered_at),
        "verified_by": order.verified_by,
        "verified_at": _dt(order.verified_at),
        "verified_with_override": order.verified_with_override,
        "missing_at_verification": list(order.missing_at_verification),
        "cancelled_at": _dt(order.cancelled_at),
        "cancelled_by": order.cancelled_by,
        "cancel_reason": order.cancel_reason,
        "comments": order.comments,
        "version": order.version,
    }


def order_from_dict(data: Dict) -> TestOrder:
    try:
        p = data["patient"]
        results = {
            r["parameter_id"]: ResultEntry(
                parameter_id=r["parameter_id"],
                value=r.get("value"),
                remarks=r.get("remarks") or "",
            )
            for r in data.get("results", [])
        }
        return TestOrder(
            id=data["id"],
            order_number=data["order_number"],
            test_code=data["test_code"],
            patient=Patient(id=p["id"], name=p.get("name"), sex=p.get("sex")),
            parameter_ids=list(data["parameter_ids"]),
            results=results,
            status=OrderStatus(data["status"]),
            ordered_at=_parse_dt(data.get("ordered_at")),
            ordered_by=data.get("ordered_by"),
            sample_barcode=data.get("sample_barcode"),
            sample_collected_at=_parse_dt(data.get("sample_collected_at")),
            sample_collected_by=data.get("sample_collected_by"),
            entered_by=data.get("entered_by"),
            entered_at=_parse_dt(data.get("entered_at")),
            verified_by=data.get("verified_by"),
            verified_at=_parse_dt(data.get("verified_at")),
            verified_with_override=bool(data.get("verified_with_override", False)),
            missing_at_verification=list(data.get("missing_at_verification") or []),
            cancelled_at=_parse_dt(data.get("cancelled_at")),
            cancelled_by=data.get("cancelled_by"),
            cancel_reason=data.get("cancel_reason") or "",
            comments=data.get("comments") or "",
            version=int(data.get("version", 0)),
        )
    except (KeyError, TypeError, ValueError) as ex:
        raise ValidationError(f"Registro de orden inválido: {ex}") from ex


class FileOrderStore:
    """Repositorio de órdenes: un JSON por orden en ``root``.

    ``save`` hace compare-and-swap sobre ``version``: con el lock de la orden
    tomado relee el archivo y, si no tiene la versión esperada, levanta
    ConcurrencyError. Cada escritura exitosa incrementa la versión.

    El lock es un archivo ``.<id>.lock`` creado con O_EXCL; si un proceso muere
    con el lock tomado hay que borrarlo a mano.
    """

    def __init__(self, root: str, lock_timeout: float = 5.0):
        self.root = Path(root)
        self.lock_timeout = lock_timeout
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, order_id: str) -> Path:
        if not _SAFE_ID.match(order_id or ""):
            raise NotFoundError(f"Id de orden inválido: '{order_id}'")
        return self.root / f"{order_id}.json"

    @contextmanager
    def _lock(self, order_id: str):
        lock = self._path(order_id).with_name(f".{order_id}.lock")
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fd = os.open(lock, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                break
            except FileExistsError:
                if time.monotonic() >= deadline:
                    raise OrderLockedError(order_id, self.lock_timeout) from None
                time.sleep(0.05)
        try:
            yield
        finally:
            os.close(fd)
            os.unlink(lock)

    def _read(self, path: Path) -> TestOrder:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as ex:
            raise ValidationError(f"Archivo de orden corrupto {path.name}: {ex}") from ex
        return order_from_dict(data)

    def _write(self, order: TestOrder):
        p = self._path(order.id)
        tmp = p.with_name(f".{p.name}.{uuid.uuid4().hex[:8]}.tmp")
        tmp.write_text(json.dumps(order_to_dict(order), ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, p)

    def exists(self, order_id: str) -> bool:
        return self._path(order_id).exists()

    def get(self, order_id: str) -> TestOrder:
        p = self._path(order_id)
        if not p.exists():
            raise NotFoundError(f"Orden '{order_id}' no existe")
        return self._read(p)

    def add(self, order: TestOrder) -> TestOrder:
        with self._lock(order.id):
            if self.exists(order.id):
                raise ValidationError(f"Orden '{order.id}' ya existe")
            order.version = 1
            self._write(order)
        return order

    def save(self, order: TestOrder, expected_version: int) -> TestOrder:
        with self._lock(order.id):
            current = self.get(order.id)
            if current.version != expected_version:
                raise ConcurrencyError(order.id, expected_version, current.version)
            order.version = expected_version + 1
            self._write(order)
        return order

    def list_all(self) -> List[TestOrder]:
        return [self._read(f) for f in sorted(self.root.glob("*.json"))]
