"""Feature source for NUMA topology and NVDIMM devices."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Optional

from .base import DEFAULT_HOST, FeatureSource, Features, HostPaths

log = logging.getLogger(__name__)


def is_numa(host: Optional[HostPaths] = None) -> bool:
    """Return whether more than one memory node is online. Raises OSError."""
    host = host or DEFAULT_HOST
    with open(host.sysfs.path("devices/system/node/online"), encoding="utf-8") as f:
        return f.read().strip() != "0"


def detect_nvdimm(host: Optional[HostPaths] = None) -> Optional[Dict[str, bool]]:
    """Return NVDIMM features, or None when the nd class is absent."""
    host = host or DEFAULT_HOST
    features: Dict[str, bool] = {}
    try:
        devices = os.listdir(host.sysfs.path("class/nd"))
    except FileNotFoundError:
        return None
    if devices:
        features["present"] = True

    try:
        regions = os.listdir(host.sysfs.path("bus/nd/devices"))
    except OSError as exc:
        log.warning("failed to detect NVDIMM configuration: %s", exc)
    else:
        if any(name.startswith("dax") for name in regions):
            features["dax"] = True
    return features


@dataclass
class MemorySource(FeatureSource):
    """Reports ``numa`` and NVDIMM presence and DAX configuration."""

    name: ClassVar[str] = "memory"
    host: HostPaths = field(default=DEFAULT_HOST)

    def discover(self) -> Features:
        features: Features = {}
        try:
            if is_numa(self.host):
                features["numa"] = True
        except OSError as exc:
            log.error("failed to detect NUMA topology: %s", exc)

        try:
            nvdimm = detect_nvdimm(self.host)
        except OSError as exc:
            log.error("NVDIMM detection failed: %s", exc)
        else:
            for key, value in (nvdimm or {}).items():
                features["nv." + key] = value
        return features