from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import yaml

from labverify.commons.errors import NotFoundError
from labverify.domain.models import ParameterDefinition, TestOrder
from labverify.validation.validators import validate_catalog_or_raise


@dataclass(frozen=True)
class TestDefinition:
    code: str
    name: str
    sample_type: str
    parameters: Tuple[ParameterDefinition, ...]

    def active_parameters(self) -> List[ParameterDefinition]:
        return sorted((p for p in self.parameters if p.is_active), key=lambda p: p.display_order)


class TestCatalog:
    """Catálogo de exámenes y sus parámetros (solo lectura para el núcleo).

    Acepta una ruta a YAML o un dict ya cargado, igual que el engine de
    plantillas del integrador.
    """

    __test__ = False

    def __init__(self, config_path_or_obj: Any):
        if isinstance(config_path_or_obj, str):
            with open(config_path_or_obj, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        elif isinstance(config_path_or_obj, dict):
            data = config_path_or_obj
        else:
            data = {"tests": []}

        model = validate_catalog_or_raise(data)
        self._tests: Dict[str, TestDefinition] = {}
        self._params: Dict[str, ParameterDefinition] = {}
        for t in model.tests:
            params = tuple(
                ParameterDefinition(
                    id=p.id,
                    name=p.name,
                    unit=p.unit,
                    range_male=p.normal_range_male,
                    range_female=p.normal_range_female,
                    critical_low=p.critical_low,
                    critical_high=p.critical_high,
                    display_order=p.display_order,
                    is_active=p.is_active,
                )
                for p in t.parameters
            )
            self._tests[t.code] = TestDefinition(t.code, t.name, t.sample_type, params)
            for p in params:
                self._params[p.id] = p

    def get_test(self, code: str) -> TestDefinition:
        try:
            return self._tests[code]
        except KeyError:
            raise NotFoundError(f"Examen '{code}' no existe en el catálogo") from None

    def get_parameter(self, parameter_id: str) -> ParameterDefinition:
        try:
            return self._params[parameter_id]
        except KeyError:
            raise NotFoundError(f"Parámetro '{parameter_id}' no existe en el catálogo") from None

    def parameters_for(self, order: TestOrder) -> Dict[str, ParameterDefinition]:
        return {pid: self.get_parameter(pid) for pid in order.parameter_ids}
