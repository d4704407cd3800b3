from __future__ import annotations

import tomllib
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"


@dataclass(frozen=True)
class BusinessConfig:
    default_tax_rate: Decimal = Decimal("0")


@dataclass(frozen=True)
class SchedulingConfig:
    open_hour: int = 8
    close_hour: int = 18
    slot_minutes: int = 30
    buffer_minutes: int = 15
    default_duration: int = 60


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    db: DbConfig
    business: BusinessConfig
    scheduling: SchedulingConfig


def _scheduling(raw: dict) -> SchedulingConfig:
    sched = SchedulingConfig(
        open_hour=int(raw.get("open_hour", 8)),
        close_hour=int(raw.get("close_hour", 18)),
        slot_minutes=int(raw.get("slot_minutes", 30)),
        buffer_minutes=int(raw.get("buffer_minutes", 15)),
        default_duration=int(raw.get("default_duration", 60)),
    )
    if not 0 <= sched.open_hour < sched.close_hour <= 24:
        raise ConfigError("scheduling.open_hour must be before scheduling.close_hour (0-24)")
    if sched.slot_minutes <= 0 or sched.default_duration <= 0 or sched.buffer_minutes < 0:
        raise ConfigError("scheduling minutes must be positive (buffer may be 0)")
    return sched


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    try:
        app = data["app"]
        db = data["db"]
        business = data.get("business", {})
        return AppConfig(
            name=str(app.get("name", "Garage Ledger")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            db=DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "disable")),
            ),
            business=BusinessConfig(
                default_tax_rate=Decimal(str(business.get("default_tax_rate", 0)))
            ),
            scheduling=_scheduling(data.get("scheduling", {})),
        )
    except ConfigError:
        raise
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except (TypeError, ValueError, InvalidOperation) as e:
        raise ConfigError(f"Invalid config values: {e}") from e
