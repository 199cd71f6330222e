"""Feature source for SR-IOV capable network interfaces."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from .base import DEFAULT_HOST, FeatureSource, Features, HostPaths

log = logging.getLogger(__name__)

SYSFS_BASE_DIR = "class/net"

# Linux network interface flags
FLAG_UP = 1 << 0
FLAG_LOOPBACK = 1 << 3

_INTEGER = re.compile(r"[+-]?[0-9]+")
_LEGACY_OCTAL = re.compile(r"0[0-7_]+")


def _atoi(text: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    return int(text)


def _parse_uint(text: str) -> int:
    if not text or text[0] in "+-":
        raise ValueError(f"invalid syntax: {text!r}")
    if _LEGACY_OCTAL.fullmatch(text):
        return int(text, 8)
    return int(text, 0)


def read_if_flags(host: Optional[HostPaths], name: str) -> int:
    """Read the flag word of a network interface."""
    host = host or DEFAULT_HOST
    try:
        with open(host.sysfs.path(SYSFS_BASE_DIR, name, "flags"), encoding="utf-8") as f:
            raw = f.read()
    except OSError as exc:
        raise OSError(f"failed to read flags for interface {name!r}: {exc}") from exc
    try:
        return _parse_uint(raw.strip())
    except ValueError as exc:
        raise ValueError(f"failed to parse flags for interface {name!r}: {exc}") from exc


def _read_count(path: str) -> int:
    with open(path, encoding="utf-8", errors="replace") as f:
        return _atoi(f.read().strip())


@dataclass
class NetworkSource(FeatureSource):
    """Reports ``sriov.capable`` and ``sriov.configured`` for up, non-loopback NICs."""

    name: ClassVar[str] = "network"
    host: HostPaths = field(default=DEFAULT_HOST)

    def discover(self) -> Features:
        features: Features = {}
        try:
            interfaces = sorted(os.listdir(self.host.sysfs.path(SYSFS_BASE_DIR)))
        except OSError as exc:
            raise OSError(f"failed to list network interfaces: {exc}") from exc

        for name in interfaces:
            try:
                flags = read_if_flags(self.host, name)
            except (OSError, ValueError) as exc:
                log.error("%s", exc)
                continue
            if not flags & FLAG_UP or flags & FLAG_LOOPBACK:
                continue

            device = self.host.sysfs.path(SYSFS_BASE_DIR, name, "device")
            try:
                total = _read_count(os.path.join(device, "sriov_totalvfs"))
            except OSError as exc:
                log.debug("SR-IOV not supported for network interface: %s: %s", name, exc)
                continue
            except ValueError as exc:
                log.error(
                    "error in obtaining maximum supported number of virtual functions "
                    "for network interface: %s: %s", name, exc,
                )
                continue
            if total <= 0:
                continue

            log.debug("SR-IOV capability is detected on the network interface: %s", name)
            features["sriov.capable"] = True
            try:
                num = _read_count(os.path.join(device, "sriov_numvfs"))
            except OSError as exc:
                log.debug("SR-IOV not configured for network interface: %s: %s", name, exc)
                continue
            except ValueError as exc:
                log.error(
                    "error in obtaining the configured number of virtual functions "
                    "for network interface: %s: %s", name, exc,
                )
                continue
            if num > 0:
                log.debug("%d virtual functions configured on network interface: %s", num, name)
                features["sriov.configured"] = True
                break
        return features