import logging
import os
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger(__name__)


_BASE_DIR = Path(__file__).resolve().parent.parent
_DEFAULT_CONFIG_DIR = _BASE_DIR / "config"
_DEFAULT_LOCK_CONSTANTS_PATH = _DEFAULT_CONFIG_DIR / "lock_constants.yaml"

_DEFAULT_LOCK_CONSTANTS_DATA: Dict[str, Any] = {
    "locks": {
        "default_timeout_seconds": 30.0,
        "max_attempt_delay_ms": 5000,
        "keep_alive_interval_seconds": 60.0,
        "keep_alive_query": "SELECT 1;",
    },
    "database": {
        "url": "",
        "echo": False,
    },
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _resolve_config_path(candidate: Optional[str], default: Path) -> Path:
    if not candidate:
        return default
    path = Path(candidate)
    if not path.is_absolute():
        path = _BASE_DIR / path
    return path


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and isinstance(base.get(key), dict)
        ):
            base[key] = _deep_merge(dict(base[key]), value)
        else:
            base[key] = value
    return base


class LockConstants:
    """File-backed lock tuning values merged over built-in defaults."""

    def __init__(
        self,
        path: Optional[str] = None,
        *,
        defaults: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._path: Path = _resolve_config_path(
            path or os.getenv("SESSIONLOCK_CONSTANTS_FILE"),
            _DEFAULT_LOCK_CONSTANTS_PATH,
        )
        self._defaults: Dict[str, Any] = deepcopy(defaults or _DEFAULT_LOCK_CONSTANTS_DATA)
        self._data: Dict[str, Any] = {}
        self.reload()

    @property
    def path(self) -> Path:
        return self._path

    def reload(self) -> None:
        raw_data: Dict[str, Any] = {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
                if not isinstance(loaded, dict):
                    logger.warning(
                        "Lock constants file did not contain a mapping; using defaults.",
                        extra={
                            "category": "config",
                            "config_path": str(self._path),
                            "stage": "lock_constants_load",
                            "error_type": "InvalidMapping",
                        },
                    )
                else:
                    raw_data = loaded
        except FileNotFoundError:
            logger.warning(
                "Lock constants file not found; using default values.",
                extra={
                    "category": "config",
                    "config_path": str(self._path),
                    "stage": "lock_constants_load",
                    "error_type": "FileNotFoundError",
                },
            )
        except yaml.YAMLError as exc:
            logger.warning(
                "Failed to parse lock constants file; using defaults.",
                extra={
                    "category": "config",
                    "config_path": str(self._path),
                    "stage": "lock_constants_load",
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )

        merged = deepcopy(self._defaults)
        if raw_data:
            merged = _deep_merge(merged, raw_data)
        self._data = merged

    def get(self, key: str, default: Any = None) -> Any:
        value = self._data.get(key, default)
        return deepcopy(value)

    def section(self, key: str) -> Dict[str, Any]:
        section = self._data.get(key, {})
        if isinstance(section, dict):
            return deepcopy(section)
        return {}

    @property
    def locks(self) -> Dict[str, Any]:
        return self.section("locks")

    @property
    def database(self) -> Dict[str, Any]:
        return self.section("database")


LOCK_CONSTANTS = LockConstants()


def get_lock_constants() -> LockConstants:
    return LOCK_CONSTANTS


@dataclass(frozen=True)
class LockSettings:
    """Tuning values consumed by :class:`sessionlock.lock.DistributedLockManager`."""

    default_timeout_seconds: float = 30.0
    max_attempt_delay_ms: int = 5000
    keep_alive_interval_seconds: float = 60.0
    keep_alive_query: str = "SELECT 1;"


class Config:
    def __init__(self, constants: Optional[LockConstants] = None):
        self.constants: LockConstants = constants or get_lock_constants()
        locks_section = self.constants.locks
        database_section = self.constants.database

        self.DEFAULT_TIMEOUT_SECONDS: float = self._resolve_positive_float(
            "SESSIONLOCK_DEFAULT_TIMEOUT_SECONDS",
            locks_section.get("default_timeout_seconds"),
            fallback=30.0,
        )
        self.MAX_ATTEMPT_DELAY_MS: int = self._resolve_positive_int(
            "SESSIONLOCK_MAX_ATTEMPT_DELAY_MS",
            locks_section.get("max_attempt_delay_ms"),
            fallback=5000,
        )
        self.KEEP_ALIVE_INTERVAL_SECONDS: float = self._resolve_positive_float(
            "SESSIONLOCK_KEEP_ALIVE_INTERVAL_SECONDS",
            locks_section.get("keep_alive_interval_seconds"),
            fallback=60.0,
        )
        keep_alive_query = locks_section.get("keep_alive_query")
        self.KEEP_ALIVE_QUERY: str = (
            keep_alive_query
            if isinstance(keep_alive_query, str) and keep_alive_query.strip()
            else "SELECT 1;"
        )

        database_url_env = os.getenv("SESSIONLOCK_DATABASE_URL", "").strip()
        if database_url_env:
            self.DATABASE_URL: str = database_url_env
        else:
            self.DATABASE_URL = str(database_section.get("url") or "")

        database_echo_raw = os.getenv("SESSIONLOCK_DATABASE_ECHO")
        if database_echo_raw is None:
            self.DATABASE_ECHO: bool = bool(database_section.get("echo", False))
        else:
            self.DATABASE_ECHO = database_echo_raw.strip().lower() in _TRUE_VALUES
        self.DEBUG: bool = bool(
            os.getenv("SESSIONLOCK_DEBUG", default="0") == "1"
        )

    @property
    def lock_settings(self) -> LockSettings:
        return LockSettings(
            default_timeout_seconds=self.DEFAULT_TIMEOUT_SECONDS,
            max_attempt_delay_ms=self.MAX_ATTEMPT_DELAY_MS,
            keep_alive_interval_seconds=self.KEEP_ALIVE_INTERVAL_SECONDS,
            keep_alive_query=self.KEEP_ALIVE_QUERY,
        )

    @classmethod
    def _resolve_positive_float(
        cls, env_var: str, file_value: Any, *, fallback: float
    ) -> float:
        parsed = cls._parse_positive_float(os.getenv(env_var), env_var=env_var)
        if parsed is not None:
            return parsed
        try:
            value = float(file_value)
        except (TypeError, ValueError):
            return fallback
        return value if value > 0 else fallback

    @classmethod
    def _resolve_positive_int(
        cls, env_var: str, file_value: Any, *, fallback: int
    ) -> int:
        parsed = cls._parse_positive_int(os.getenv(env_var), env_var=env_var)
        if parsed is not None:
            return parsed
        try:
            value = int(file_value)
        except (TypeError, ValueError):
            return fallback
        return value if value > 0 else fallback

    @staticmethod
    def _parse_positive_int(
        raw_value: Optional[str], *, env_var: str
    ) -> Optional[int]:
        if not raw_value:
            return None
        try:
            value = int(raw_value)
        except ValueError:
            logger.warning(
                "Invalid integer value '%s' for %s; ignoring it.",
                raw_value,
                env_var,
                extra={"category": "config", "error_type": "ValueError"},
            )
            return None
        if value <= 0:
            logger.warning(
                "%s must be greater than zero; ignoring %s.",
                env_var,
                raw_value,
                extra={"category": "config", "error_type": "ValueError"},
            )
            return None
        return value

    @staticmethod
    def _parse_positive_float(
        raw_value: Optional[str], *, env_var: str
    ) -> Optional[float]:
        if not raw_value:
            return None
        try:
            value = float(raw_value)
        except ValueError:
            logger.warning(
                "Invalid float value '%s' for %s; ignoring it.",
                raw_value,
                env_var,
                extra={"category": "config", "error_type": "ValueError"},
            )
            return None
        if value <= 0:
            logger.warning(
                "%s must be greater than zero; ignoring %s.",
                env_var,
                raw_value,
                extra={"category": "config", "error_type": "ValueError"},
            )
            return None
        return value
