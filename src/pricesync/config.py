"""
Engine configuration loaded from config.yaml

Resolution order for the base directory:
--data-dir flag > PRICESYNC_BASE_PATH env var > ~/.pricesync
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ValidationError


DEFAULT_BASE_PATH = Path.home() / ".pricesync"
CONFIG_FILENAME = "config.yaml"
BASE_PATH_ENV = "PRICESYNC_BASE_PATH"

CONFIG_TEMPLATE = """# pricesync configuration
# Offline conflict detection and resolution

detection:
  clock_skew_threshold_ms: 1000  # timestamp differences up to this are clock noise
  identity_field: id

retention:
  days: 30  # resolved conflicts older than this are purged by cleanup
  page_size: 500

storage:
  db_path: conflicts.sqlite  # relative to the base directory
"""


def get_base_path(data_dir: Optional[Path] = None) -> Path:
    """Get the base directory for pricesync data.

    Args:
        data_dir: Value from --data-dir, if provided.
    """
    if data_dir:
        return Path(data_dir)
    env_path = os.getenv(BASE_PATH_ENV)
    if env_path:
        return Path(env_path)
    return DEFAULT_BASE_PATH


@dataclass
class EngineConfig:
    """Settings for detection, retention and storage"""
    clock_skew_threshold_ms: int = 1000
    identity_field: str = "id"
    retention_days: float = 30
    page_size: int = 500
    db_path: Path = Path("conflicts.sqlite")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base_path: Optional[Path] = None) -> "EngineConfig":
        """
        Build a config from the parsed YAML structure.

        Args:
            data: Parsed config.yaml content
            base_path: Directory relative db paths are resolved against

        Raises:
            ValidationError: If a value has the wrong type or range
        """
        detection = data.get("detection") or {}
        retention = data.get("retention") or {}
        storage = data.get("storage") or {}

        try:
            config = cls(
                clock_skew_threshold_ms=int(detection.get("clock_skew_threshold_ms", 1000)),
                identity_field=str(detection.get("identity_field", "id")),
                retention_days=float(retention.get("days", 30)),
                page_size=int(retention.get("page_size", 500)),
                db_path=Path(str(storage.get("db_path", "conflicts.sqlite"))).expanduser(),
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid configuration: {e}") from None

        if config.clock_skew_threshold_ms < 0:
            raise ValidationError("detection.clock_skew_threshold_ms must be >= 0")
        if config.retention_days < 0:
            raise ValidationError("retention.days must be >= 0")
        if config.page_size <= 0:
            raise ValidationError("retention.page_size must be positive")
        if not config.identity_field:
            raise ValidationError("detection.identity_field must not be empty")

        if base_path is not None and not config.db_path.is_absolute():
            config.db_path = Path(base_path) / config.db_path
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detection": {
                "clock_skew_threshold_ms": self.clock_skew_threshold_ms,
                "identity_field": self.identity_field,
            },
            "retention": {
                "days": self.retention_days,
                "page_size": self.page_size,
            },
            "storage": {
                "db_path": str(self.db_path),
            },
        }


def load_config(base_path: Optional[Path] = None) -> EngineConfig:
    """
    Load config.yaml from the base directory.

    A missing file yields the defaults.

    Raises:
        ValidationError: If the file is not valid YAML or holds bad values
    """
    base_path = get_base_path(base_path)
    config_path = base_path / CONFIG_FILENAME
    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            data = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid YAML in {config_path}: {e}") from None
        if not isinstance(data, dict):
            raise ValidationError(f"{config_path} must contain a mapping")
    return EngineConfig.from_dict(data, base_path=base_path)
