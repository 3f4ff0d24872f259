"""State storage configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Literal, cast

from .errors import ConfigurationError

APP_DIR_NAME: Final[str] = "driftless"
DEFAULT_STATE_FILENAME: Final[str] = "driftless.state.json"
DEFAULT_DB_FILENAME: Final[str] = "driftless.db"

type StateBackend = Literal["file", "sqlalchemy"]

STATE_BACKENDS: Final[tuple[str, ...]] = ("file", "sqlalchemy")


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    state_filename: str = DEFAULT_STATE_FILENAME
    database_filename: str = DEFAULT_DB_FILENAME

    def resolve_data_dir(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def ensure_data_dir(self) -> Path:
        data_dir = self.resolve_data_dir()
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    def state_path(self, *, ensure: bool = True) -> Path:
        base = self.ensure_data_dir() if ensure else self.resolve_data_dir()
        return base / self.state_filename

    def database_path(self, *, ensure: bool = True) -> Path:
        base = self.ensure_data_dir() if ensure else self.resolve_data_dir()
        return base / self.database_filename

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.database_path()}"


@dataclass(frozen=True, slots=True)
class StateBackendConfig:
    backend: StateBackend
    state_path: Path
    database_uri: str


def _default_data_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA")
        base_path = Path(base) if base else (Path.home() / "AppData" / "Local")
    else:
        base = os.getenv("XDG_DATA_HOME")
        base_path = Path(base) if base else (Path.home() / ".local" / "share")
    return (base_path / APP_DIR_NAME).expanduser().resolve()


def get_storage_config() -> StorageConfig:
    env_dir = os.getenv("DRIFTLESS_DATA_DIR")
    data_dir = Path(env_dir) if env_dir else _default_data_dir()
    return StorageConfig(data_dir=data_dir)


def get_state_backend_config(*, storage: StorageConfig | None = None) -> StateBackendConfig:
    storage_config = storage or get_storage_config()

    backend = os.getenv("DRIFTLESS_STATE_BACKEND", "file").strip().lower()
    if backend not in STATE_BACKENDS:
        raise ConfigurationError(f"Unsupported state backend: {backend}")

    env_path = os.getenv("DRIFTLESS_STATE_PATH")
    state_path = (
        Path(env_path).expanduser().resolve()
        if env_path
        else storage_config.state_path(ensure=backend == "file")
    )

    env_uri = os.getenv("DATABASE_URI")
    if env_uri:
        database_uri = env_uri
    elif backend == "sqlalchemy":
        database_uri = storage_config.database_uri()
    else:
        database_uri = f"sqlite+pysqlite:///{storage_config.database_path(ensure=False)}"

    return StateBackendConfig(
        backend=cast("StateBackend", backend),
        state_path=state_path,
        database_uri=database_uri,
    )
