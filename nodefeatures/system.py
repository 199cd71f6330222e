"""Feature source for operating system release information."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import ClassVar, Dict

from .base import DEFAULT_HOST, FeatureSource, Features, HostPaths

log = logging.getLogger(__name__)

OS_RELEASE_FIELDS = ("ID", "VERSION_ID")

_OS_RELEASE_LINE = re.compile(r"(\w+)=(.+)", re.ASCII)
_VERSION = re.compile(r"(?P<major>\d+)(\.(?P<minor>\d+))?(\..*)?", re.ASCII)


def parse_os_release(text: str) -> Dict[str, str]:
    """Parse os-release content into a mapping of key to unquoted value."""
    release: Dict[str, str] = {}
    for line in text.split("\n"):
        m = _OS_RELEASE_LINE.match(line.removesuffix("\r"))
        if m:
            release[m.group(1)] = m.group(2).strip('"')
    return release


def split_version(version: str) -> Dict[str, str]:
    """Split a numeric version into ``major`` and ``minor``.

    Returns an empty mapping when the version does not start with digits;
    a missing minor component is given as an empty string.
    """
    m = _VERSION.fullmatch(version)
    if not m:
        return {}
    return {"major": m.group("major"), "minor": m.group("minor") or ""}


@dataclass
class SystemSource(FeatureSource):
    """Reports the OS release ID and version, with numeric version parts."""

    name: ClassVar[str] = "system"
    host: HostPaths = field(default=DEFAULT_HOST)

    def discover(self) -> Features:
        features: Features = {}
        try:
            with open(self.host.etc.path("os-release"), encoding="utf-8", errors="replace") as f:
                release = parse_os_release(f.read())
        except OSError as exc:
            log.error("failed to get os-release: %s", exc)
            return features

        for key in OS_RELEASE_FIELDS:
            if key not in release:
                continue
            value = release[key]
            feature = "os_release." + key
            features[feature] = value
            if key == "VERSION_ID":
                for sub_key, sub_value in split_version(value).items():
                    if sub_value:
                        features[f"{feature}.{sub_key}"] = sub_value
        return features