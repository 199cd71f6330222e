"""Feature source for kernel version, configuration and SELinux."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional

from .base import DEFAULT_HOST, FeatureSource, Features, HostPaths
from .kernelutils import get_kernel_version, read_kconfig

log = logging.getLogger(__name__)

_FORBIDDEN = re.compile(r"[^-A-Za-z0-9_.]")
_VERSION = re.compile(
    r"^(?P<major>\d+)(\.(?P<minor>\d+))?(\.(?P<revision>\d+))?(-.*)?$", re.ASCII
)


def _default_config_opts() -> List[str]:
    return ["NO_HZ", "NO_HZ_IDLE", "NO_HZ_FULL", "PREEMPT"]


@dataclass
class KernelConfig:
    kconfig_file: str = ""
    config_opts: List[str] = field(default_factory=_default_config_opts)


def parse_version(full: str) -> Dict[str, str]:
    """Turn a kernel release into label-safe ``full``, ``major``, ``minor`` and ``revision``."""
    full = _FORBIDDEN.sub("_", full).strip("-_.")
    version = {"full": full}
    m = _VERSION.match(full)
    if m:
        version.update({k: v or "" for k, v in m.groupdict().items()})
    return version


def selinux_enabled(host: Optional[HostPaths] = None) -> bool:
    """Return whether SELinux is enforcing. Raises OSError when it cannot be told."""
    host = host or DEFAULT_HOST
    sysfs_base = host.sysfs.path("fs")
    try:
        os.stat(sysfs_base)
    except OSError as exc:
        raise OSError(f"unable to detect selinux status: {exc}") from exc

    selinux_base = os.path.join(sysfs_base, "selinux")
    if not os.path.exists(selinux_base):
        log.debug("selinux not available on the system")
        return False

    try:
        with open(os.path.join(selinux_base, "enforce"), "rb") as f:
            status = f.read()
    except OSError as exc:
        raise OSError(f"failed to detect the status of selinux: {exc}") from exc
    return status[:1] == b"1"


@dataclass
class KernelSource(FeatureSource):
    """Reports kernel version components, selected kconfig options and SELinux."""

    name: ClassVar[str] = "kernel"
    config: KernelConfig = field(default_factory=KernelConfig)
    host: HostPaths = field(default=DEFAULT_HOST)
    kernel_version_path: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.config, KernelConfig):
            raise TypeError(f"invalid config type: {type(self.config).__name__}")

    def new_config(self) -> KernelConfig:
        return KernelConfig()

    def discover(self) -> Features:
        features: Features = {}

        release: Optional[str] = None
        try:
            release = get_kernel_version(self.kernel_version_path)
        except OSError as exc:
            log.error("failed to get kernel version: %s", exc)
        else:
            for key, value in parse_version(release).items():
                features["version." + key] = value

        try:
            kconfig = read_kconfig(self.config.kconfig_file, self.host, release)
        except OSError as exc:
            log.error("failed to read kconfig: %s", exc)
            kconfig = {}

        for opt in self.config.config_opts:
            if opt in kconfig:
                features["config." + opt] = kconfig[opt]

        try:
            if selinux_enabled(self.host):
                features["selinux.enabled"] = True
        except OSError as exc:
            log.warning("%s", exc)

        return features