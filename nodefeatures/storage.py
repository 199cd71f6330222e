"""Feature source reporting non-rotational block devices."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import ClassVar

from .base import DEFAULT_HOST, FeatureSource, Features, HostPaths


@dataclass
class StorageSource(FeatureSource):
    """Reports ``nonrotationaldisk`` when any SSD-like block device is attached."""

    name: ClassVar[str] = "storage"
    host: HostPaths = field(default=DEFAULT_HOST)

    def discover(self) -> Features:
        features: Features = {}
        try:
            block_devices = sorted(os.listdir(self.host.sysfs.path("block")))
        except OSError:
            return features
        for bdev in block_devices:
            fname = self.host.sysfs.path("block", bdev, "queue/rotational")
            try:
                with open(fname, "rb") as f:
                    data = f.read()
            except OSError as exc:
                raise OSError(f"can't read rotational status: {exc}") from exc
            if data[:1] == b"0":
                features["nonrotationaldisk"] = True
                break
        return features