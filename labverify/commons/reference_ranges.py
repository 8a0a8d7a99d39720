import re
from dataclasses import dataclass
from typing import Optional, Union

from labverify.domain.models import ParameterDefinition

# "70-110", "3.85 - 5.78", "-3 - 3"; se busca dentro del texto ("Adulto: 70-110 mg/dL")
_INTERVAL_RE = re.compile(r"(?<![\d.])(-?\d+\.?\d*)\s*-\s*(-?\d+\.?\d*)")
# un comparador antes del intervalo lo convierte en nota: "< 200 (edad 20-49)"
_COMPARATOR_RE = re.compile(r"[<>\u2264\u2265]")

_FEMALE = {"female", "f", "mujer", "femenino"}
_MALE = {"male", "m", "hombre", "masculino"}


@dataclass(frozen=True)
class Interval:
    low: float
    high: float

    def contains(self, value: float) -> bool:
        return self.low <= value <= self.high


@dataclass(frozen=True)
class Unbounded:
    """Rango sin intervalo cerrado ('< 200', '> 60', vacío): no marca anormalidad."""

    text: str = ""


Range = Union[Interval, Unbounded]


def parse_range(text: Optional[str]) -> Range:
    text = (text or "").strip()
    m = _INTERVAL_RE.search(text)
    if not m or _COMPARATOR_RE.search(text, 0, m.start()):
        return Unbounded(text)
    low, high = float(m.group(1)), float(m.group(2))
    if low > high:
        return Unbounded(text)
    return Interval(low, high)


def normalize_sex(sex: Optional[str]) -> Optional[str]:
    """Devuelve 'female', 'male' o None (desconocido)."""
    s = (sex or "").strip().lower()
    if s in _FEMALE:
        return "female"
    if s in _MALE:
        return "male"
    return None


def resolve_reference_range(param: ParameterDefinition, sex: Optional[str]) -> str:
    """Rango aplicable al paciente.

    Mujer con rango femenino configurado -> rango femenino; en cualquier otro
    caso el rango masculino, que actúa como rango por defecto. Sin rango
    configurado devuelve "" y el clasificador lo trata como desconocido.
    """
    if normalize_sex(sex) == "female" and param.range_female.strip():
        return param.range_female.strip()
    return param.range_male.strip()
