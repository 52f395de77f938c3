"""Configuration provider following Black Box Design principles."""
import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Protocol

import yaml

logger = logging.getLogger(__name__)

COMMUNITY = "community"
AHAS = "ahas"

# Vendor presets for the tool agent installed on every node
_VENDOR_PRESETS = {
    COMMUNITY: {
        "tool_pod_name": "chaosblade-tool",
        "tool_pod_labels": {"app": "chaosblade-tool"},
    },
    AHAS: {
        "tool_pod_name": "ahas-agent",
        "tool_pod_labels": {"app": "ahas"},
    },
}


@dataclass(frozen=True)
class BladeConfig:
    """Constants describing the chaosblade tool agent for one vendor."""
    vendor: str = COMMUNITY
    home: str = "/opt/chaosblade"
    operator_namespace: str = "kube-system"
    tool_pod_name: str = "chaosblade-tool"
    tool_container_name: str = "chaosblade-tool"
    tool_pod_labels: Dict[str, str] = field(
        default_factory=lambda: dict(_VENDOR_PRESETS[COMMUNITY]["tool_pod_labels"])
    )

    @property
    def blade_bin(self) -> str:
        """Path of the blade binary inside the tool container."""
        return f"{self.home}/blade"

    @property
    def tool_pod_selector(self) -> str:
        """Label selector matching the tool agent pods."""
        return ",".join(f"{key}={value}" for key, value in sorted(self.tool_pod_labels.items()))

    @classmethod
    def for_vendor(cls, vendor: str, **overrides) -> "BladeConfig":
        """Build the config for a vendor preset, applying explicit overrides."""
        preset = _VENDOR_PRESETS.get(vendor)
        if preset is None:
            raise ValueError(f"Unknown blade vendor: {vendor}. Expected one of {sorted(_VENDOR_PRESETS)}")
        values = dict(preset)
        values["tool_pod_labels"] = dict(preset["tool_pod_labels"])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(vendor=vendor, **values)


@dataclass(frozen=True)
class ExecutionConfig:
    """Limits of the execution engine."""
    max_workers: int = 64
    exec_timeout: int = 30
    prefer_cri: bool = False
    default_namespace: str = "default"


@dataclass(frozen=True)
class ControllerConfig:
    """Reconcile loop configuration."""
    reconcile_workers: int = 2
    resync_period: int = 300
    requeue_delay: float = 5.0
    max_requeue_delay: float = 300.0
    request_timeout: int = 30
    kube_context: Optional[str] = None


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_blade_config(self) -> BladeConfig:
        """Get tool agent constants."""
        ...

    def get_execution_config(self) -> ExecutionConfig:
        """Get execution engine limits."""
        ...

    def get_controller_config(self) -> ControllerConfig:
        """Get reconcile loop configuration."""
        ...


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class EnvConfigProvider:
    """
    Environment-based configuration provider.

    An optional YAML file (KUBEBLADE_CONFIG_FILE) may hold sections named
    blade, execution and controller; keys in a section override the
    environment for that config object.
    """

    def __init__(self, config_file: Optional[str] = None):
        self._overlay = self._load_overlay(config_file or os.getenv("KUBEBLADE_CONFIG_FILE"))

    @staticmethod
    def _load_overlay(path: Optional[str]) -> Dict[str, Any]:
        if not path:
            return {}
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning(f"Config file {path} not found, using environment only")
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping at the top level")
        logger.info(f"Loaded configuration overlay from {path}")
        return data

    def _apply_overlay(self, section: str, config):
        values = self._overlay.get(section) or {}
        known = {f.name for f in fields(config)}
        unknown = set(values) - known
        if unknown:
            logger.warning(f"Ignoring unknown keys in config section '{section}': {sorted(unknown)}")
        return replace(config, **{k: v for k, v in values.items() if k in known})

    def get_blade_config(self) -> BladeConfig:
        """Get tool agent constants from environment variables."""
        vendor = (self._overlay.get("blade") or {}).get("vendor") or os.getenv("BLADE_VENDOR", COMMUNITY)
        config = BladeConfig.for_vendor(
            vendor.lower(),
            home=os.getenv("BLADE_HOME"),
            operator_namespace=os.getenv("OPERATOR_NAMESPACE"),
        )
        return self._apply_overlay("blade", config)

    def get_execution_config(self) -> ExecutionConfig:
        """Get execution engine limits from environment variables."""
        config = ExecutionConfig(
            max_workers=int(os.getenv("MAX_WORKERS", "64")),
            exec_timeout=int(os.getenv("EXEC_TIMEOUT", "30")),
            prefer_cri=_env_bool("PREFER_CRI"),
            default_namespace=os.getenv("DEFAULT_NAMESPACE", "default"),
        )
        config = self._apply_overlay("execution", config)
        if config.max_workers < 1:
            raise ValueError("MAX_WORKERS must be at least 1")
        return config

    def get_controller_config(self) -> ControllerConfig:
        """Get reconcile loop configuration from environment variables."""
        config = ControllerConfig(
            reconcile_workers=int(os.getenv("RECONCILE_WORKERS", "2")),
            resync_period=int(os.getenv("RESYNC_PERIOD", "300")),
            requeue_delay=float(os.getenv("REQUEUE_DELAY", "5")),
            max_requeue_delay=float(os.getenv("MAX_REQUEUE_DELAY", "300")),
            request_timeout=int(os.getenv("REQUEST_TIMEOUT", "30")),
            kube_context=os.getenv("KUBECONFIG_CONTEXT") or None,
        )
        return self._apply_overlay("controller", config)

