# ===============================
# File: labverify/domain/models.py
# ===============================
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class Classification(str, Enum):
    NORMAL = "normal"
    ABNORMAL = "abnormal"
    CRITICAL = "critical"
    # valor vacío o no numérico: no levanta banderas
    UNCLASSIFIED = "unclassified"

    @property
    def is_abnormal(self) -> bool:
        return self in (Classification.ABNORMAL, Classification.CRITICAL)

    @property
    def is_critical(self) -> bool:
        return self is Classification.CRITICAL


class OrderStatus(str, Enum):
    ORDERED = "ordered"
    SAMPLE_COLLECTED = "sample_collected"
    RESULTS_DRAFT = "results_draft"
    VERIFIED = "verified"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.VERIFIED, OrderStatus.CANCELLED)


@dataclass(frozen=True)
class ParameterDefinition:
    id: str
    name: str
    unit: str = ""
    range_male: str = ""
    range_female: str = ""
    critical_low: Optional[float] = None
    critical_high: Optional[float] = None
    display_order: int = 0
    is_active: bool = True


@dataclass
class ResultEntry:
    parameter_id: str
    value: Optional[str] = None
    remarks: str = ""
    # solo lo escribe ResultSet (ver services/result_set.py)
    classification: Classification = Classification.UNCLASSIFIED

    @property
    def has_value(self) -> bool:
        return bool(self.value and self.value.strip())


@dataclass
class Patient:
    id: str
    name: Optional[str] = None
    sex: Optional[str] = None


@dataclass(frozen=True)
class Actor:
    id: str
    can_verify: bool = False


@dataclass
class TestOrder:
    id: str
    order_number: str
    test_code: str
    patient: Patient
    parameter_ids: List[str]
    results: Dict[str, ResultEntry] = field(default_factory=dict)
    status: OrderStatus = OrderStatus.ORDERED
    ordered_at: Optional[datetime] = None
    ordered_by: Optional[str] = None
    sample_barcode: Optional[str] = None
    sample_collected_at: Optional[datetime] = None
    sample_collected_by: Optional[str] = None
    entered_by: Optional[str] = None
    entered_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    verified_with_override: bool = False
    missing_at_verification: List[str] = field(default_factory=list)
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancel_reason: str = ""
    comments: str = ""
    version: int = 0

    # pytest intenta recolectar clases "Test*"
    __test__ = False

    def entries(self) -> List[ResultEntry]:
        """Entradas en el orden de los parámetros de la orden."""
        return [self.results[pid] for pid in self.parameter_ids if pid in self.results]
