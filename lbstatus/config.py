import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

import yaml

from .models import ResourceKind

# Get log level from environment variable or default to INFO
LBSTATUS_LOG_LEVEL = os.environ.get("LBSTATUS_LOG_LEVEL", "INFO").upper()
# Get dependencies log level from environment variable or default to WARNING
DEPENDENCIES_LOG_LEVEL = os.environ.get("DEPENDENCIES_LOG_LEVEL", "WARNING").upper()

# Configure logging
logging.basicConfig(
    level=getattr(logging, DEPENDENCIES_LOG_LEVEL, logging.WARNING),  # Set default level for all loggers
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Set specific level for lbstatus loggers
lbstatus_logger = logging.getLogger("lbstatus")
lbstatus_logger.setLevel(getattr(logging, LBSTATUS_LOG_LEVEL, logging.INFO))

# Front-end proxy Service
ENVOY_SERVICE_NAME = os.environ.get("ENVOY_SERVICE_NAME", "envoy")
ENVOY_SERVICE_NAMESPACE = os.environ.get("ENVOY_SERVICE_NAMESPACE", "projectcontour")


def as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


# Ingress class ownership
INGRESS_CLASS = os.environ.get("INGRESS_CLASS", "")
CLAIM_DEFAULT_CLASS = as_bool(os.environ.get("CLAIM_DEFAULT_CLASS", "false"))

TRACKED_KINDS = os.environ.get("TRACKED_KINDS", "ingresses,httpproxies")
DEBOUNCE_DELAY_SECONDS = float(os.environ.get("DEBOUNCE_DELAY_SECONDS", "1.0"))
WATCH_RETRY_SECONDS = float(os.environ.get("WATCH_RETRY_SECONDS", "10"))


def parse_kinds(kinds: Sequence[str] | str) -> List[ResourceKind]:
    if isinstance(kinds, str):
        kinds = kinds.split(",")
    return [ResourceKind.from_plural(kind.strip()) for kind in kinds if kind.strip()]


@dataclass
class Settings:
    service_name: str = ENVOY_SERVICE_NAME
    service_namespace: str = ENVOY_SERVICE_NAMESPACE
    ingress_class: str = INGRESS_CLASS
    claim_default_class: bool = CLAIM_DEFAULT_CLASS
    kinds: List[ResourceKind] = field(default_factory=lambda: parse_kinds(TRACKED_KINDS))
    debounce_delay: float = DEBOUNCE_DELAY_SECONDS
    watch_retry: float = WATCH_RETRY_SECONDS

    @classmethod
    def from_env(cls) -> "Settings":
        return cls()


def load_config(path: Path) -> Settings:
    """
    Reads settings from a YAML file, falling back to the environment defaults.

    Args:
        path: The configuration file.

    Returns:
        The merged settings.
    """
    data = yaml.safe_load(Path(path).read_text())
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Configuration must be a mapping")

    settings = Settings.from_env()
    service = data.get("service", {})
    if not isinstance(service, dict):
        raise ValueError("'service' section must be a mapping")
    settings.service_name = str(service.get("name", settings.service_name))
    settings.service_namespace = str(service.get("namespace", settings.service_namespace))

    ingress_class = data.get("ingressClass", settings.ingress_class)
    settings.ingress_class = "" if ingress_class is None else str(ingress_class)
    settings.claim_default_class = as_bool(data.get("claimDefaultClass", settings.claim_default_class))

    if "kinds" in data:
        if not isinstance(data["kinds"], list):
            raise ValueError("'kinds' must be a list")
        settings.kinds = parse_kinds(data["kinds"])
    settings.debounce_delay = float(data.get("debounceDelaySeconds", settings.debounce_delay))
    settings.watch_retry = float(data.get("watchRetrySeconds", settings.watch_retry))
    return settings
