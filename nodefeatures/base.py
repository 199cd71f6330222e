"""Host directory helpers and the interface shared by all feature sources."""

from __future__ import annotations

import posixpath
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Dict

Features = Dict[str, Any]

_SLASHES = re.compile(r"/+")


@dataclass(frozen=True)
class HostDir:
    """A directory of the host system that is being inspected."""

    root: str

    def path(self, *args: str) -> str:
        """Return a cleaned path to ``args`` below this directory."""
        parts = [part for part in (self.root, *args) if part]
        if not parts:
            return ""
        return posixpath.normpath(_SLASHES.sub("/", "/".join(parts)))

    def __str__(self) -> str:
        return self.root


@dataclass(frozen=True)
class HostPaths:
    """Locations of the host directories that feature sources read."""

    boot: HostDir
    etc: HostDir
    sysfs: HostDir
    usr: HostDir


def host_paths(prefix: str = "/") -> HostPaths:
    """Build the host directory set for a mount prefix such as ``/`` or ``/host-``."""
    return HostPaths(
        boot=HostDir(prefix + "boot"),
        etc=HostDir(prefix + "etc"),
        sysfs=HostDir(prefix + "sys"),
        usr=HostDir(prefix + "usr"),
    )


DEFAULT_HOST = host_paths("/")


class FeatureSource(ABC):
    """A source of discovered node features.

    Sources that take configuration hold it in their ``config`` attribute.
    """

    name: ClassVar[str] = ""
    config: Any = None

    @abstractmethod
    def discover(self) -> Features:
        """Return the features discovered on this node."""

    def new_config(self) -> Any:
        """Return a fresh default configuration, or None if there is none."""
        return None