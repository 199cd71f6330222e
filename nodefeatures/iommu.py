"""Feature source reporting whether an IOMMU is available."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import ClassVar

from .base import DEFAULT_HOST, FeatureSource, Features, HostPaths


@dataclass
class IommuSource(FeatureSource):
    """Reports ``enabled`` when any IOMMU device is present."""

    name: ClassVar[str] = "iommu"
    host: HostPaths = field(default=DEFAULT_HOST)

    def discover(self) -> Features:
        try:
            devices = os.listdir(self.host.sysfs.path("class/iommu/"))
        except OSError as exc:
            raise OSError(f"failed to check for IOMMU support: {exc}") from exc
        features: Features = {}
        if devices:
            features["enabled"] = True
        return features