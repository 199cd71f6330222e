"""CPU power-management and resource-director features read from sysfs and CPUID."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .base import DEFAULT_HOST, HostPaths

log = logging.getLogger(__name__)

# CPUID leaf (EAX input) values
LEAF_EXT_FEATURE_FLAGS = 0x07
LEAF_RDT_MONITORING = 0x0F
LEAF_RDT_ALLOCATION = 0x10
LEAF_PROCESSOR_FREQUENCY_INFORMATION = 0x16

# CPUID sub-leaf (ECX input) values
RDT_MONITORING_SUBLEAF_L3 = 1

# CPUID bit masks
EXT_FEATURE_FLAGS_EBX_RDT_M = 1 << 12
EXT_FEATURE_FLAGS_EBX_RDT_A = 1 << 15
RDT_MONITORING_EDX_L3_MONITORING = 1 << 1
RDT_MONITORING_SUBLEAF_L3_EDX_L3_OCCUPANCY_MONITORING = 1 << 0
RDT_MONITORING_SUBLEAF_L3_EDX_L3_TOTAL_BANDWIDTH_MONITORING = 1 << 1
RDT_MONITORING_SUBLEAF_L3_EDX_L3_LOCAL_BANDWIDTH_MONITORING = 1 << 2
RDT_ALLOCATION_EBX_L3_CACHE_ALLOCATION = 1 << 1
RDT_ALLOCATION_EBX_L2_CACHE_ALLOCATION = 1 << 2
RDT_ALLOCATION_EBX_MEMORY_BANDWIDTH_ALLOCATION = 1 << 3

_INTEGER = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class CpuidRegisters:
    """Register values returned by one CPUID query."""

    eax: int = 0
    ebx: int = 0
    ecx: int = 0
    edx: int = 0


CpuidFunc = Callable[[int, int], CpuidRegisters]


def _atoi(text: str) -> int:
    text = text.strip()
    if not _INTEGER.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    return int(text)


def _read_text(path: str) -> str:
    with open(path, encoding="utf-8", errors="replace") as f:
        return f.read()


def _missing(path: str) -> bool:
    try:
        os.stat(path)
    except FileNotFoundError:
        return True
    except OSError:
        return False
    return False


def detect_cstate(host: Optional[HostPaths] = None) -> Optional[bool]:
    """Return whether C-states are enabled, or None if it cannot be told.

    Only the intel_idle driver is inspected. Raises OSError when sysfs or a
    needed file cannot be read and ValueError for a non-integer max_cstate.
    """
    host = host or DEFAULT_HOST
    sysfs_base = host.sysfs.path("devices/system/cpu")
    try:
        os.stat(sysfs_base)
    except OSError as exc:
        raise OSError(f"unable to detect cstate status: {exc}") from exc

    cpuidle_dir = os.path.join(sysfs_base, "cpuidle")
    if _missing(cpuidle_dir):
        log.debug("cpuidle disabled in the kernel")
        return None

    try:
        driver = _read_text(os.path.join(cpuidle_dir, "current_driver")).strip()
    except OSError as exc:
        raise OSError(f"cannot get driver for cpuidle: {exc}") from exc
    if driver != "intel_idle":
        log.debug("intel_idle driver is not in use (%s is active)", driver)
        return None

    try:
        data = _read_text(host.sysfs.path("module/intel_idle/parameters/max_cstate"))
    except OSError as exc:
        raise OSError(f"cannot determine cstate from max_cstates: {exc}") from exc
    try:
        cstates = _atoi(data)
    except ValueError as exc:
        raise ValueError(f"non-integer value of cstates: {exc}") from exc
    return cstates > 0


def _common_scaling_governor(cpufreq_dir: str) -> str:
    try:
        policies = sorted(os.listdir(cpufreq_dir))
    except OSError as exc:
        log.error("failed to read cpufreq directory: %s", exc)
        return ""

    scaling = ""
    for policy in policies:
        policy_dir = os.path.join(cpufreq_dir, policy)
        try:
            cpus = _read_text(os.path.join(policy_dir, "affected_cpus"))
        except OSError:
            log.error("could not read cpufreq policy %s affected_cpus", policy)
            continue
        if not cpus.strip():
            log.info("policy %s has no associated cpus", policy)
            continue
        try:
            governor = _read_text(os.path.join(policy_dir, "scaling_governor")).strip()
        except OSError:
            log.error("could not read cpufreq policy %s scaling_governor", policy)
            continue
        if scaling and scaling != governor:
            log.info("scaling_governor for policy %s doesn't match prior policy", policy)
            return ""
        scaling = governor
    return scaling


def detect_pstate(host: Optional[HostPaths] = None) -> Optional[Dict[str, str]]:
    """Return P-state features such as status, turbo and scaling governor.

    Returns None when the intel_pstate driver is absent or off. Raises
    OSError when sysfs or the driver status cannot be read.
    """
    host = host or DEFAULT_HOST
    sysfs_base = host.sysfs.path("devices/system/cpu")
    try:
        os.stat(sysfs_base)
    except OSError as exc:
        raise OSError(f"unable to detect pstate status: {exc}") from exc

    pstate_dir = os.path.join(sysfs_base, "intel_pstate")
    if _missing(pstate_dir):
        log.debug("intel pstate driver not enabled")
        return None

    try:
        status = _read_text(os.path.join(pstate_dir, "status")).strip()
    except OSError as exc:
        raise OSError(f"could not read pstate status: {exc}") from exc
    if status == "off":
        log.info("intel_pstate driver is not in use")
        return None

    features: Dict[str, str] = {"status": status}

    try:
        with open(os.path.join(pstate_dir, "no_turbo"), "rb") as f:
            no_turbo = f.read()
    except OSError as exc:
        log.error("can't detect whether turbo boost is enabled: %s", exc)
    else:
        features["turbo"] = "true" if no_turbo[:1] == b"0" else "false"

    if status != "active":
        return features

    scaling = _common_scaling_governor(os.path.join(sysfs_base, "cpufreq"))
    if scaling:
        features["scaling_governor"] = scaling
    return features


def discover_sst_bf(
    nominal_base_frequency: Optional[int], host: Optional[HostPaths] = None
) -> bool:
    """Return whether Intel SST-BF appears enabled.

    ``nominal_base_frequency`` is the CPUID nominal base frequency in MHz, or
    None where CPUID is unavailable (then the answer is False). SST-BF is
    enabled when some CPU's effective base frequency (kHz in sysfs) exceeds it.
    """
    if nominal_base_frequency is None:
        return False
    host = host or DEFAULT_HOST
    devices = sorted(os.listdir(host.sysfs.path("bus/cpu/devices")))
    for cpu in devices:
        file_path = host.sysfs.path("bus/cpu/devices", cpu, "cpufreq/base_frequency")
        try:
            data = _read_text(file_path)
        except FileNotFoundError:
            continue
        try:
            effective = _atoi(data)
        except ValueError as exc:
            raise ValueError(f"non-integer value of {file_path!r}: {exc}") from exc

        if nominal_base_frequency == 0:
            raise RuntimeError(
                "failed to determine if SST-BF is enabled: "
                "nominal base frequency info is missing"
            )
        if int(effective / 1000) > nominal_base_frequency:
            return True
    return False


def discover_rdt(cpuid: Optional[CpuidFunc]) -> List[str]:
    """Return the Intel RDT capabilities reported by ``cpuid(leaf, subleaf)``.

    Without a CPUID function no capabilities are reported.
    """
    if cpuid is None:
        return []

    ext_features = cpuid(LEAF_EXT_FEATURE_FLAGS, 0)
    rdt_monitoring = cpuid(LEAF_RDT_MONITORING, 0)
    rdt_l3_monitoring = cpuid(LEAF_RDT_MONITORING, RDT_MONITORING_SUBLEAF_L3)
    rdt_allocation = cpuid(LEAF_RDT_ALLOCATION, 0)

    features: List[str] = []
    if ext_features.ebx & EXT_FEATURE_FLAGS_EBX_RDT_M and (
        rdt_monitoring.edx & RDT_MONITORING_EDX_L3_MONITORING
    ):
        features.append("RDTMON")
        l3_edx = rdt_l3_monitoring.edx
        if l3_edx & RDT_MONITORING_SUBLEAF_L3_EDX_L3_OCCUPANCY_MONITORING:
            features.append("RDTCMT")
        if (l3_edx & RDT_MONITORING_SUBLEAF_L3_EDX_L3_TOTAL_BANDWIDTH_MONITORING) and (
            l3_edx & RDT_MONITORING_SUBLEAF_L3_EDX_L3_LOCAL_BANDWIDTH_MONITORING
        ):
            features.append("RDTMBM")

    if ext_features.ebx & EXT_FEATURE_FLAGS_EBX_RDT_A:
        alloc_ebx = rdt_allocation.ebx
        if alloc_ebx & RDT_ALLOCATION_EBX_L3_CACHE_ALLOCATION:
            features.append("RDTL3CA")
        if alloc_ebx & RDT_ALLOCATION_EBX_L2_CACHE_ALLOCATION:
            features.append("RDTL2CA")
        if alloc_ebx & RDT_ALLOCATION_EBX_MEMORY_BANDWIDTH_ALLOCATION:
            features.append("RDTMBA")

    return features