from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys

DEFAULT_OWNERS = ("Yousif", "Hawra", "Bayan")


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class AppSettings:
    default_owners: tuple[str, ...] = DEFAULT_OWNERS
    clock_skew_seconds: int = 60


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "InventoryProfitDashboard") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "dashboard.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def load_settings(env: dict[str, str] | None = None) -> AppSettings:
    env = os.environ if env is None else env

    owners = DEFAULT_OWNERS
    raw_owners = env.get("IPD_DEFAULT_OWNERS", "").strip()
    if raw_owners:
        owners = tuple(n.strip() for n in raw_owners.split(",") if n.strip())

    skew = 60
    raw_skew = env.get("IPD_CLOCK_SKEW_SECONDS", "").strip()
    if raw_skew:
        try:
            skew = max(0, int(raw_skew))
        except ValueError as e:
            raise ValueError(f"IPD_CLOCK_SKEW_SECONDS must be an integer, got {raw_skew!r}") from e

    return AppSettings(default_owners=owners, clock_skew_seconds=skew)
