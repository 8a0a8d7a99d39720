# labverify/services/result_set.py
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from labverify.commons.classifier import classify_parameter
from labverify.commons.errors import NotFoundError
from labverify.domain.models import Classification, ParameterDefinition, ResultEntry, TestOrder


@dataclass(frozen=True)
class ResultSummary:
    normal: int = 0
    abnormal: int = 0
    critical: int = 0
    unset: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class ResultSet:
    """Resultados de una orden.

    Único punto que escribe ``ResultEntry.classification``: cada cambio de
    valor vuelve a pasar por el clasificador con el rango del sexo del
    paciente y los umbrales críticos del parámetro.
    """

    def __init__(self, order: TestOrder, parameters: Mapping[str, ParameterDefinition]):
        missing = [pid for pid in order.parameter_ids if pid not in parameters]
        if missing:
            raise NotFoundError(f"Orden {order.id}: parámetros sin definición en catálogo: {missing}")
        self.order = order
        self.parameters = {pid: parameters[pid] for pid in order.parameter_ids}
        for pid in order.parameter_ids:
            entry = order.results.setdefault(pid, ResultEntry(parameter_id=pid))
            # lo persistido no es confiable: siempre se recalcula
            entry.classification = self._classify(pid, entry.value)

    def _classify(self, parameter_id: str, value: Optional[str]) -> Classification:
        return classify_parameter(self.parameters[parameter_id], value, self.order.patient.sex)

    def set_value(self, parameter_id: str, value: Optional[str], remarks: Optional[str] = None) -> ResultEntry:
        if parameter_id not in self.parameters:
            raise NotFoundError(f"Orden {self.order.id}: parámetro desconocido '{parameter_id}'")
        entry = self.order.results[parameter_id]
        entry.value = value.strip() if value and value.strip() else None
        if remarks is not None:
            entry.remarks = remarks
        entry.classification = self._classify(parameter_id, entry.value)
        return entry

    def apply(self, inputs: Iterable) -> None:
        """Aplica entradas ya validadas (ver validation.validators.ResultInput)."""
        for item in inputs:
            self.set_value(item.parameter_id, item.value, item.remarks)

    def entries(self) -> List[ResultEntry]:
        return self.order.entries()

    def missing_parameters(self) -> List[str]:
        return [e.parameter_id for e in self.entries() if not e.has_value]

    def is_complete(self) -> bool:
        return not self.missing_parameters()

    def has_any_value(self) -> bool:
        return any(e.has_value for e in self.entries())

    def summary(self) -> ResultSummary:
        counts = {"normal": 0, "abnormal": 0, "critical": 0, "unset": 0}
        for e in self.entries():
            if not e.has_value:
                counts["unset"] += 1
            elif e.classification is Classification.CRITICAL:
                counts["critical"] += 1
            elif e.classification is Classification.ABNORMAL:
                counts["abnormal"] += 1
            else:
                # texto no numérico cuenta como normal (sin bandera)
                counts["normal"] += 1
        return ResultSummary(**counts)
