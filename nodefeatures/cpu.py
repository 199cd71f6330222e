"""Feature source for CPU capabilities, topology and power management."""

from __future__ import annotations

import logging
import os
import platform
from dataclasses import dataclass, field
from typing import Callable, ClassVar, FrozenSet, List, Optional

from .base import DEFAULT_HOST, FeatureSource, Features, HostPaths
from .cpufeatures import (
    LEAF_PROCESSOR_FREQUENCY_INFORMATION,
    CpuidFunc,
    detect_cstate,
    detect_pstate,
    discover_rdt,
    discover_sst_bf,
)
from .cpuidflags import get_cpuid_flags

log = logging.getLogger(__name__)

_X86_64 = frozenset({"x86_64", "amd64"})


def _default_blacklist() -> List[str]:
    return [
        "BMI1", "BMI2", "CLMUL", "CMOV", "CX16", "ERMS", "F16C", "HTT",
        "LZCNT", "MMX", "MMXEXT", "NX", "POPCNT", "RDRAND", "RDSEED",
        "RDTSCP", "SGX", "SGXLC", "SSE", "SSE2", "SSE3", "SSE4", "SSE42",
        "SSSE3",
    ]


@dataclass
class CpuidConfig:
    attribute_blacklist: List[str] = field(default_factory=_default_blacklist)
    attribute_whitelist: List[str] = field(default_factory=list)


@dataclass
class CpuConfig:
    cpuid: CpuidConfig = field(default_factory=CpuidConfig)


@dataclass(frozen=True)
class KeyFilter:
    """Passes keys that are in a whitelist, or not in a blacklist."""

    keys: FrozenSet[str]
    whitelist: bool

    def unmask(self, key: str) -> bool:
        return (key in self.keys) == self.whitelist


def make_cpuid_filter(config: CpuConfig) -> KeyFilter:
    """Build the CPUID flag filter; a non-empty whitelist wins over the blacklist."""
    if config.cpuid.attribute_whitelist:
        return KeyFilter(frozenset(config.cpuid.attribute_whitelist), True)
    return KeyFilter(frozenset(config.cpuid.attribute_blacklist), False)


def have_thread_siblings(host: Optional[HostPaths] = None) -> bool:
    """Return whether any CPU lists thread siblings. Raises OSError on read failure."""
    host = host or DEFAULT_HOST
    for cpu in sorted(os.listdir(host.sysfs.path("bus/cpu/devices"))):
        path = host.sysfs.path("bus/cpu/devices", cpu, "topology/thread_siblings_list")
        with open(path, "rb") as f:
            siblings = f.read()
        if b"," in siblings or b"-" in siblings:
            return True
    return False


@dataclass
class CpuSource(FeatureSource):
    """Reports CPUID flags, hyper-threading, SST-BF, P/C-states and RDT."""

    name: ClassVar[str] = "cpu"
    config: CpuConfig = field(default_factory=CpuConfig)
    host: HostPaths = field(default=DEFAULT_HOST)
    arch: str = field(default_factory=platform.machine)
    cpuid: Optional[CpuidFunc] = None
    cpuid_flags: Optional[Callable[[], List[str]]] = None

    def __post_init__(self) -> None:
        if not isinstance(self.config, CpuConfig):
            raise TypeError(f"invalid config type: {type(self.config).__name__}")

    def new_config(self) -> CpuConfig:
        return CpuConfig()

    @property
    def cpuid_filter(self) -> KeyFilter:
        return make_cpuid_filter(self.config)

    def _flags(self) -> List[str]:
        if self.cpuid_flags is not None:
            return list(self.cpuid_flags())
        try:
            return get_cpuid_flags(self.arch)
        except OSError as exc:
            log.error("failed to read CPU flags: %s", exc)
            return []

    def discover(self) -> Features:
        features: Features = {}
        x86 = self.arch.lower() in _X86_64

        try:
            if have_thread_siblings(self.host):
                features["hardware_multithreading"] = True
        except OSError as exc:
            log.error("failed to detect hyper-threading: %s", exc)

        if x86:
            nominal = None
            if self.cpuid is not None:
                nominal = self.cpuid(LEAF_PROCESSOR_FREQUENCY_INFORMATION, 0).eax
            try:
                if discover_sst_bf(nominal, self.host):
                    features["power.sst_bf.enabled"] = True
            except (OSError, ValueError, RuntimeError) as exc:
                log.error("failed to detect SST-BF: %s", exc)

        cpuid_filter = self.cpuid_filter
        for flag in self._flags():
            if cpuid_filter.unmask(flag):
                features["cpuid." + flag] = True

        if x86:
            try:
                pstate = detect_pstate(self.host)
            except OSError as exc:
                log.error("%s", exc)
            else:
                for key, value in (pstate or {}).items():
                    features["pstate." + key] = value

            for rdt in discover_rdt(self.cpuid):
                features["rdt." + rdt] = True

            try:
                cstate = detect_cstate(self.host)
            except (OSError, ValueError) as exc:
                log.error("%s", exc)
            else:
                if cstate is not None:
                    features["cstate.enabled"] = cstate

        return features