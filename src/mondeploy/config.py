"""Deployment configuration for mondeploy.

Configuration is read from a YAML file (``mondeploy.yml`` in the working
directory by default). Every key is optional; relative paths are resolved
against the directory holding the configuration file.

Example ``mondeploy.yml``::

    inventory: inventory/hosts.yml
    playbook: playbooks/deploy-monitoring.yml
    control_plane_host: master-node
    accelerator_group: gpu_nodes
    engine_env:
      ANSIBLE_STDOUT_CALLBACK: yaml
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "mondeploy.yml"
DEFAULT_RETENTION_DAYS = 7

DEFAULT_REQUIRED_TOOLS = ["ansible-playbook", "ansible-inventory", "ansible"]
DEFAULT_OPTIONAL_TOOLS = ["docker"]
DEFAULT_EXPORTER_UNITS = ["cmstack-gpu-exporter", "cmstack-disk-exporter", "cmstack-tmp-exporter"]

_PATH_KEYS = ("inventory", "playbook", "cleanup_playbook", "log_dir")
_STRING_KEYS = ("control_plane_host", "accelerator_group", "grafana_user", "grafana_password")
_LIST_KEYS = ("required_tools", "optional_tools", "exporter_units")


@dataclass
class DeployConfig:
    """Settings for a deployment run.

    Attributes:
        base_dir: Directory relative paths are resolved against
        inventory: Inventory file passed to the automation engine
        playbook: Main monitoring stack playbook
        cleanup_playbook: Compensating playbook run after a failure, if present
        log_dir: Directory holding per-invocation log files
        retention_days: Log files older than this are pruned at session start
        required_tools: Executables that must be on PATH
        optional_tools: Executables only warned about when missing
        control_plane_host: Inventory name of the Prometheus/Grafana host
        accelerator_group: Inventory group of GPU hosts running exporters
        grafana_user: Grafana login shown in the access report
        grafana_password: Grafana password shown in the access report
        exporter_units: systemd units of the native exporters
        engine_env: Extra environment variables for the automation engine
    """

    base_dir: Path = field(default_factory=Path.cwd)
    inventory: Path = Path("inventory/hosts.yml")
    playbook: Path = Path("playbooks/deploy-monitoring.yml")
    cleanup_playbook: Path = Path("playbooks/cleanup.yml")
    log_dir: Path = Path("logs")
    retention_days: int = DEFAULT_RETENTION_DAYS
    required_tools: list[str] = field(default_factory=lambda: list(DEFAULT_REQUIRED_TOOLS))
    optional_tools: list[str] = field(default_factory=lambda: list(DEFAULT_OPTIONAL_TOOLS))
    control_plane_host: str = "master-node"
    accelerator_group: str = "gpu_nodes"
    grafana_user: str = "admin"
    grafana_password: str = "admin123"
    exporter_units: list[str] = field(default_factory=lambda: list(DEFAULT_EXPORTER_UNITS))
    engine_env: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Resolve relative paths against base_dir."""
        self.base_dir = Path(self.base_dir)
        for key in _PATH_KEYS:
            value = Path(getattr(self, key))
            if not value.is_absolute():
                value = self.base_dir / value
            setattr(self, key, value)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {
            "inventory": str(self.inventory),
            "playbook": str(self.playbook),
            "cleanup_playbook": str(self.cleanup_playbook),
            "log_dir": str(self.log_dir),
            "retention_days": self.retention_days,
            "required_tools": self.required_tools,
            "optional_tools": self.optional_tools,
            "control_plane_host": self.control_plane_host,
            "accelerator_group": self.accelerator_group,
            "grafana_user": self.grafana_user,
            "grafana_password": self.grafana_password,
            "exporter_units": self.exporter_units,
            "engine_env": self.engine_env,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> "DeployConfig":
        """Create from dictionary, keeping defaults for missing keys.

        Raises:
            ValueError: If a known key holds a value of the wrong type
        """
        known = set(cls.__dataclass_fields__) - {"base_dir"}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")

        kwargs = {key: value for key, value in data.items() if key in known}
        _check_types(kwargs)
        if "engine_env" in kwargs:
            kwargs["engine_env"] = {str(k): str(v) for k, v in kwargs["engine_env"].items()}
        return cls(base_dir=base_dir or Path.cwd(), **kwargs)


def _check_types(values: dict[str, Any]) -> None:
    for key in _PATH_KEYS + _STRING_KEYS:
        if key in values and not (isinstance(values[key], str) and values[key]):
            raise ValueError(f"{key} must be a non-empty string")

    for key in _LIST_KEYS:
        if key in values:
            items = values[key]
            if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
                raise ValueError(f"{key} must be a list of strings")

    if "retention_days" in values:
        days = values["retention_days"]
        if isinstance(days, bool) or not isinstance(days, int) or days < 0:
            raise ValueError("retention_days must be a non-negative integer")

    if "engine_env" in values and not isinstance(values["engine_env"], dict):
        raise ValueError("engine_env must be a mapping of variable names to values")


def load_config(path: str | Path | None = None) -> DeployConfig:
    """Load deployment configuration.

    Args:
        path: Configuration file. When None, ``mondeploy.yml`` in the working
            directory is used if it exists, otherwise defaults apply.

    Returns:
        DeployConfig with paths resolved

    Raises:
        ConfigError: If the file is missing or unreadable, is not a mapping,
            or holds a value of the wrong type
    """
    if path is None:
        default = Path.cwd() / DEFAULT_CONFIG_NAME
        if not default.exists():
            logger.debug("No configuration file found, using defaults")
            return DeployConfig()
        path = default

    config_path = Path(path)
    try:
        data = yaml.safe_load(config_path.read_text())
    except OSError as e:
        raise ConfigError(str(config_path), str(e)) from e
    except yaml.YAMLError as e:
        raise ConfigError(str(config_path), f"YAML parse error: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(str(config_path), "expected a mapping at the top level")

    try:
        config = DeployConfig.from_dict(data, base_dir=config_path.resolve().parent)
    except ValueError as e:
        raise ConfigError(str(config_path), str(e)) from e

    logger.debug(f"Loaded configuration from {config_path}")
    return config
