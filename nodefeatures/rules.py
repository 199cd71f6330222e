"""Match rules that custom features are built from."""

from __future__ import annotations

import functools
import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Collection, FrozenSet, List, Mapping, NamedTuple, Optional, Set

from .base import DEFAULT_HOST, HostPaths
from .busutils import DeviceInfo, detect_pci, detect_usb
from .cpuidflags import get_cpuid_flags
from .kernelutils import read_kconfig

log = logging.getLogger(__name__)

KMOD_PROCFS_PATH = "/proc/modules"


class Rule(ABC):
    """A condition on the node that either matches or not."""

    @abstractmethod
    def match(self) -> bool:
        """Return whether the rule matches this node."""


def _in(item: Optional[str], values: Collection[str]) -> bool:
    return item is not None and item in values


@dataclass
class PciIdRule(Rule):
    """Matches PCI devices on class, vendor and device.

    Values of one attribute are alternatives; all given attributes must match.
    """

    classes: List[str] = field(default_factory=list)
    vendors: List[str] = field(default_factory=list)
    devices: List[str] = field(default_factory=list)
    host: HostPaths = field(default=DEFAULT_HOST, compare=False, repr=False)

    def match(self) -> bool:
        try:
            all_devs = detect_pci({"class": True, "vendor": True, "device": True}, self.host)
        except OSError as exc:
            raise OSError(f"failed to detect PCI devices: {exc}") from exc
        return any(
            self.match_device(dev) for class_devs in all_devs.values() for dev in class_devs
        )

    def match_device(self, dev: DeviceInfo) -> bool:
        if not (self.classes or self.vendors or self.devices):
            return False
        if self.classes and not _in(dev.get("class"), self.classes):
            return False
        if self.vendors and not _in(dev.get("vendor"), self.vendors):
            return False
        if self.devices and not _in(dev.get("device"), self.devices):
            return False
        return True


@dataclass
class UsbIdRule(Rule):
    """Matches USB devices on class, vendor, device and serial number."""

    classes: List[str] = field(default_factory=list)
    vendors: List[str] = field(default_factory=list)
    devices: List[str] = field(default_factory=list)
    serials: List[str] = field(default_factory=list)
    sysfs_root: str = field(default="/sys", compare=False, repr=False)

    def match(self) -> bool:
        spec = {"class": True, "vendor": True, "device": True, "serial": True}
        try:
            all_devs = detect_usb(spec, self.sysfs_root)
        except OSError as exc:
            raise OSError(f"failed to detect USB devices: {exc}") from exc
        return any(
            self.match_device(dev) for class_devs in all_devs.values() for dev in class_devs
        )

    def match_device(self, dev: DeviceInfo) -> bool:
        if not (self.classes or self.vendors or self.devices):
            return False
        if self.classes and not _in(dev.get("class"), self.classes):
            return False
        if self.vendors and not _in(dev.get("vendor"), self.vendors):
            return False
        if self.devices and not _in(dev.get("device"), self.devices):
            return False
        if self.serials and not _in(dev.get("serial"), self.serials):
            return False
        return True


def loaded_modules(path: str = KMOD_PROCFS_PATH) -> Set[str]:
    """Return the names of the loaded kernel modules listed in ``path``."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            text = f.read()
    except OSError as exc:
        raise OSError(f"failed to read file {path}: {exc}") from exc
    return {line.split()[0] for line in text.split("\n") if line.strip()}


@dataclass
class LoadedKmodRule(Rule):
    """Matches when every listed kernel module is loaded."""

    modules: List[str] = field(default_factory=list)
    path: str = field(default=KMOD_PROCFS_PATH, compare=False, repr=False)

    def match(self) -> bool:
        try:
            loaded = loaded_modules(self.path)
        except OSError as exc:
            raise OSError(f"failed to get loaded kernel modules. {exc}") from exc
        return all(kmod in loaded for kmod in self.modules)


@functools.lru_cache(maxsize=None)
def _system_cpuid_flags() -> FrozenSet[str]:
    try:
        return frozenset(get_cpuid_flags())
    except OSError as exc:
        log.error("failed to read CPU flags: %s", exc)
        return frozenset()


@dataclass
class CpuIdRule(Rule):
    """Matches when every listed CPU flag is present."""

    flags: List[str] = field(default_factory=list)
    available: Optional[Collection[str]] = field(default=None, compare=False, repr=False)

    def match(self) -> bool:
        available = _system_cpuid_flags() if self.available is None else set(self.available)
        return all(flag in available for flag in self.flags)


class KconfigEntry(NamedTuple):
    name: str
    value: str


def parse_kconfig_entry(raw: str) -> KconfigEntry:
    """Parse ``NAME`` or ``NAME=value``; a bare name means ``"true"``."""
    name, sep, value = raw.partition("=")
    return KconfigEntry(name, value if sep else "true")


@functools.lru_cache(maxsize=None)
def _system_kconfig() -> Mapping[str, str]:
    try:
        return read_kconfig("")
    except OSError:
        return {}


@dataclass
class KconfigRule(Rule):
    """Matches when every listed kernel config option has the given value."""

    entries: List[KconfigEntry] = field(default_factory=list)
    kconfig: Optional[Mapping[str, str]] = field(default=None, compare=False, repr=False)

    def match(self) -> bool:
        kconfig = _system_kconfig() if self.kconfig is None else self.kconfig
        return all(kconfig.get(entry.name) == entry.value for entry in self.entries)


def _env_node_name() -> str:
    return os.environ.get("NODE_NAME", "")


@dataclass
class NodenameRule(Rule):
    """Matches when any pattern is found in the node name."""

    patterns: List[str] = field(default_factory=list)
    node_name: str = field(default_factory=_env_node_name, compare=False, repr=False)

    def match(self) -> bool:
        for pattern in self.patterns:
            log.debug("matchNodename %s", pattern)
            try:
                found = re.search(pattern, self.node_name) is not None
            except re.error as exc:
                log.error("nodename rule: invalid nodename regexp %r: %s", pattern, exc)
                continue
            if found:
                log.debug("nodename rule: Match for pattern %r with node %r", pattern, self.node_name)
                return True
            log.debug("nodename rule: No match for pattern %r with node %r", pattern, self.node_name)
        return False