import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import typer
import yaml

from labverify.commons.errors import LabError, ValidationError
from labverify.commons.logger import setup_logging
from labverify.commons.types import Settings
from labverify.domain.models import Actor, OrderStatus, Patient
from labverify.helpers.catalog import TestCatalog
from labverify.helpers.file_store import FileOrderStore, order_to_dict
from labverify.helpers.notifier import build_notifier
from labverify.services.orders_service import OrdersService
from labverify.services.results_service import ResultsService

app = typer.Typer(add_completion=False, help="Lab result entry & verification")

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]


def resource_path(relative_path: str) -> str:
    """Devuelve la ruta absoluta a un recurso, ya sea ejecutando como .exe o en desarrollo"""
    if hasattr(sys, "_MEIPASS"):
        # Si es un ejecutable generado por PyInstaller
        base_path = sys._MEIPASS
    else:
        base_path = os.path.abspath(".")

    return os.path.join(base_path, relative_path)


def load_cfg(path: Optional[str] = None) -> Settings:
    config_path = path or os.getenv("LABVERIFY_CONFIG") or resource_path("labverify/configs/settings.yaml")
    with open(config_path, "r", encoding="utf-8") as f:
        return Settings.model_validate(yaml.safe_load(f) or {})


class Services:
    def __init__(self, cfg: Settings):
        self.cfg = cfg
        self.store = FileOrderStore(cfg.paths.orders_root)
        self.catalog = TestCatalog(cfg.catalog.path)
        self.orders = OrdersService(self.store, self.catalog)
        self.results = ResultsService(
            self.store, self.catalog, build_notifier(cfg.notifications, cfg.paths)
        )

    def actor(self, actor_id: str) -> Actor:
        return Actor(id=actor_id, can_verify=actor_id in self.cfg.verifiers)


def _services() -> Services:
    cfg = load_cfg()
    setup_logging(cfg.paths.logs_root, os.getenv("LOG_LEVEL", cfg.app.log_level))
    return Services(cfg)


def _split_pairs(pairs: Optional[List[str]], what: str) -> Dict[str, str]:
    out = {}
    for item in pairs or []:
        if "=" not in item:
            raise ValidationError(f"{what} '{item}' debe tener la forma PARAMETRO=VALOR")
        key, val = item.split("=", 1)
        out[key.strip()] = val
    return out


def _collect_results(values, remarks, results_file) -> List[dict]:
    rows: Dict[str, dict] = {}
    if results_file:
        try:
            data = json.loads(Path(results_file).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as ex:
            raise ValidationError(f"No se pudo leer {results_file}: {ex}") from ex
        if not isinstance(data, list):
            raise ValidationError(f"{results_file} debe contener una lista de resultados")
        for row in data:
            rows[row.get("parameter_id") if isinstance(row, dict) else None] = row
    for pid, val in _split_pairs(values, "--value").items():
        rows.setdefault(pid, {"parameter_id": pid})["value"] = val
    for pid, rem in _split_pairs(remarks, "--remark").items():
        rows.setdefault(pid, {"parameter_id": pid})["remarks"] = rem
    return list(rows.values())


def _echo_order(svc: Services, order):
    data = order_to_dict(order)
    data["summary"] = svc.results.result_set(order).summary().as_dict()
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2))


def _fail(ex: LabError):
    typer.echo(f"Error: {ex}", err=True)
    raise typer.Exit(code=1)


@app.command()
def create_order(
    patient_id: str = typer.Option(..., help="Id del paciente"),
    test: str = typer.Option(..., help="Código del examen en el catálogo"),
    patient_name: Optional[str] = typer.Option(None),
    sex: Optional[str] = typer.Option(None, help="Male | Female"),
    ordered_by: Optional[str] = typer.Option(None),
    order_number: Optional[str] = typer.Option(None),
):
    svc = _services()
    try:
        order = svc.orders.create_order(
            Patient(id=patient_id, name=patient_name, sex=sex),
            test,
            ordered_by=ordered_by,
            order_number=order_number,
        )
    except LabError as ex:
        _fail(ex)
    _echo_order(svc, order)


@app.command()
def collect_sample(
    order_id: str,
    by: Optional[str] = typer.Option(None, help="Quién tomó la muestra"),
    version: Optional[int] = typer.Option(None, help="Versión esperada de la orden"),
):
    svc = _services()
    try:
        order = svc.orders.collect_sample(order_id, by, expected_version=version)
    except LabError as ex:
        _fail(ex)
    _echo_order(svc, order)


@app.command()
def save_draft(
    order_id: str,
    value: Optional[List[str]] = typer.Option(None, "--value", help="PARAMETRO=VALOR (repetible)"),
    remark: Optional[List[str]] = typer.Option(None, "--remark", help="PARAMETRO=texto (repetible)"),
    results_file: Optional[str] = typer.Option(None, help="JSON con [{parameter_id, value, remarks}]"),
    comments: Optional[str] = typer.Option(None, help="Comentarios del técnico"),
    by: Optional[str] = typer.Option(None, help="Técnico que ingresa"),
    version: Optional[int] = typer.Option(None, help="Versión esperada de la orden"),
):
    svc = _services()
    try:
        results = _collect_results(value, remark, results_file)
        order = svc.results.save_draft(order_id, results, comments, by, expected_version=version)
    except LabError as ex:
        _fail(ex)
    _echo_order(svc, order)


@app.command()
def verify(
    order_id: str,
    actor: str = typer.Option(..., help="Usuario que verifica"),
    value: Optional[List[str]] = typer.Option(None, "--value", help="PARAMETRO=VALOR (repetible)"),
    remark: Optional[List[str]] = typer.Option(None, "--remark", help="PARAMETRO=texto (repetible)"),
    results_file: Optional[str] = typer.Option(None),
    comments: Optional[str] = typer.Option(None),
    override_incomplete: bool = typer.Option(
        False, "--override-incomplete", help="Confirma verificar aunque falten valores"
    ),
    version: Optional[int] = typer.Option(None, help="Versión esperada de la orden"),
):
    svc = _services()
    try:
        results = _collect_results(value, remark, results_file)
        order = svc.results.verify(
            order_id,
            results,
            comments,
            svc.actor(actor),
            override_incomplete=override_incomplete,
            expected_version=version,
        )
    except LabError as ex:
        _fail(ex)
    _echo_order(svc, order)


@app.command()
def cancel(
    order_id: str,
    by: Optional[str] = typer.Option(None),
    reason: str = typer.Option("", help="Motivo de la cancelación"),
    version: Optional[int] = typer.Option(None),
):
    svc = _services()
    try:
        order = svc.orders.cancel(order_id, by, reason, expected_version=version)
    except LabError as ex:
        _fail(ex)
    _echo_order(svc, order)


@app.command()
def show(order_id: str):
    svc = _services()
    try:
        order = svc.results.load_order(order_id)
    except LabError as ex:
        _fail(ex)
    _echo_order(svc, order)


@app.command()
def list_orders(
    patient_id: Optional[str] = typer.Option(None),
    status: Optional[OrderStatus] = typer.Option(None),
    start: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, formats=DATE_FORMATS),
):
    svc = _services()
    try:
        orders = svc.orders.list_orders(patient_id=patient_id, status=status, start=start, end=end)
    except LabError as ex:
        _fail(ex)
    rows = [
        {
            "id": o.id,
            "order_number": o.order_number,
            "test_code": o.test_code,
            "patient_id": o.patient.id,
            "status": o.status.value,
            "ordered_at": o.ordered_at.isoformat() if o.ordered_at else None,
            "version": o.version,
        }
        for o in orders
    ]
    typer.echo(json.dumps(rows, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    app()
