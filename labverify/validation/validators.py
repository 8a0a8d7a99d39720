# labverify/validation/validators.py
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from labverify.commons.errors import ValidationError


class ResultInput(BaseModel):
    """Valor digitado por el técnico para un parámetro.

    ``extra="forbid"``: una clasificación (o is_abnormal / is_critical) enviada
    por el cliente se rechaza; siempre la calcula el clasificador.
    """

    model_config = ConfigDict(extra="forbid")

    parameter_id: str
    value: Optional[str] = None
    remarks: str = ""

    @field_validator("parameter_id")
    @classmethod
    def _id_not_empty(cls, v: str):
        if not v or not v.strip():
            raise ValueError("parameter_id es obligatorio")
        return v.strip()

    @field_validator("value", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        # los números llegan a veces como int/float desde JSON
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = str(v)
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("remarks", mode="before")
    @classmethod
    def _remarks_none(cls, v):
        return "" if v is None else v


class ParameterModel(BaseModel):
    id: str
    name: str
    unit: str = ""
    normal_range_male: str = ""
    normal_range_female: str = ""
    critical_low: Optional[float] = None
    critical_high: Optional[float] = None
    display_order: int = 0
    is_active: bool = True

    @field_validator("normal_range_male", "normal_range_female", "unit", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return "" if v is None else str(v)

    @model_validator(mode="after")
    def _critical_order(self):
        if (
            self.critical_low is not None
            and self.critical_high is not None
            and self.critical_low > self.critical_high
        ):
            raise ValueError(
                f"{self.id}: critical_low ({self.critical_low}) > critical_high ({self.critical_high})"
            )
        return self


class TestModel(BaseModel):
    code: str
    name: str
    sample_type: str = ""
    parameters: List[ParameterModel] = Field(default_factory=list)

    @field_validator("parameters")
    @classmethod
    def _unique_ids(cls, v: List[ParameterModel]):
        ids = [p.id for p in v]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise ValueError(f"Parámetros duplicados: {dupes}")
        return v


class CatalogModel(BaseModel):
    tests: List[TestModel]


def _raise_from(ex: PydanticValidationError, what: str):
    raise ValidationError(f"{what} inválido: {ex}") from ex


def validate_results_or_raise(payload: Iterable[Any]) -> List[ResultInput]:
    """Construye los ResultInput y levanta ValidationError si algo falta/está mal."""
    items: List[ResultInput] = []
    try:
        for raw in payload or []:
            items.append(raw if isinstance(raw, ResultInput) else ResultInput.model_validate(raw))
    except PydanticValidationError as ex:
        _raise_from(ex, "Resultado")
    ids = [i.parameter_id for i in items]
    dupes = sorted({i for i in ids if ids.count(i) > 1})
    if dupes:
        raise ValidationError(f"Parámetros repetidos en la misma entrada: {dupes}")
    return items


def validate_catalog_or_raise(data: Dict[str, Any]) -> CatalogModel:
    try:
        return CatalogModel.model_validate(data or {})
    except PydanticValidationError as ex:
        _raise_from(ex, "Catálogo")
