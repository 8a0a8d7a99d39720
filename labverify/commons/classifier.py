# labverify/commons/classifier.py
import re
from typing import Optional, Union

from labverify.commons.reference_ranges import (
    Interval,
    Range,
    Unbounded,
    parse_range,
    resolve_reference_range,
)
from labverify.domain.models import Classification, ParameterDefinition

# decimal simple: "95", "-1.5", ".8", "7."; sin exponentes ni nan/inf
_DECIMAL_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)")


def parse_measured_value(raw: Optional[str]) -> Optional[float]:
    """Convierte el valor digitado a número; None si está vacío o no es decimal."""
    text = (raw or "").strip()
    if not text or not _DECIMAL_RE.fullmatch(text):
        return None
    return float(text)


def classify(
    raw_value: Optional[str],
    reference_range: Union[str, Range, None],
    critical_low: Optional[float] = None,
    critical_high: Optional[float] = None,
) -> Classification:
    """Clasifica un valor medido. Función pura: nunca lanza ni toca estado.

    Orden de prioridad:
      1. vacío / no numérico -> UNCLASSIFIED (un error de digitación no dispara alarmas)
      2. fuera de umbral crítico -> CRITICAL (gana sobre el rango)
      3. rango 'lo-hi' -> ABNORMAL si v < lo o v > hi, si no NORMAL
      4. otros formatos ('< 200', '> 60', vacío) -> NORMAL
    """
    v = parse_measured_value(raw_value)
    if v is None:
        return Classification.UNCLASSIFIED

    if critical_low is not None and v < critical_low:
        return Classification.CRITICAL
    if critical_high is not None and v > critical_high:
        return Classification.CRITICAL

    if isinstance(reference_range, (Interval, Unbounded)):
        rng = reference_range
    else:
        rng = parse_range(reference_range)
    if isinstance(rng, Interval) and not rng.contains(v):
        return Classification.ABNORMAL
    return Classification.NORMAL


def classify_parameter(
    param: ParameterDefinition, raw_value: Optional[str], sex: Optional[str]
) -> Classification:
    return classify(
        raw_value,
        resolve_reference_range(param, sex),
        param.critical_low,
        param.critical_high,
    )
