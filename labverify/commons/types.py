from typing import List, Literal

from pydantic import BaseModel, Field


class AppCfg(BaseModel):
    name: str = "labverify"
    log_level: str = "INFO"


class PathsCfg(BaseModel):
    logs_root: str = "logs"
    orders_root: str = "data/orders"
    outbox: str = "data/outbox"


class FileNotificationCfg(BaseModel):
    filename_pattern: str = "finalized_{timestamp}_{uuid}.json"


class NotificationCfg(BaseModel):
    type: Literal["file", "log"] = "log"
    file: FileNotificationCfg = Field(default_factory=FileNotificationCfg)


class CatalogCfg(BaseModel):
    path: str = "labverify/configs/catalog.yaml"


class Settings(BaseModel):
    app: AppCfg = Field(default_factory=AppCfg)
    paths: PathsCfg = Field(default_factory=PathsCfg)
    catalog: CatalogCfg = Field(default_factory=CatalogCfg)
    notifications: NotificationCfg = Field(default_factory=NotificationCfg)
    # actores con capacidad de verificar; el CLI no autentica
    verifiers: List[str] = Field(default_factory=list)
