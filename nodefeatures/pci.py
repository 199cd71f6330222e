"""Feature source for PCI devices of selected classes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import ClassVar, Iterable, List, Sequence

from .base import DEFAULT_HOST, FeatureSource, Features, HostPaths
from .busutils import DEFAULT_PCI_DEV_ATTRS, EXTRA_PCI_DEV_ATTRS, detect_pci

log = logging.getLogger(__name__)

_FALLBACK_LABEL_FIELDS = ("class", "vendor")


def _default_class_whitelist() -> List[str]:
    return ["03", "0b40", "12"]


def _default_label_fields() -> List[str]:
    return ["class", "vendor"]


@dataclass
class PciConfig:
    device_class_whitelist: List[str] = field(default_factory=_default_class_whitelist)
    device_label_fields: List[str] = field(default_factory=_default_label_fields)


def _select_label_fields(
    configured: Iterable[str], valid: Sequence[str], fallback: Sequence[str]
) -> List[str]:
    requested = set(configured)
    fields = [attr for attr in valid if attr in requested]
    invalid = sorted(requested.difference(valid))
    if invalid:
        log.warning("invalid fields '%s' in deviceLabelFields, ignoring...", invalid)
    if not fields:
        log.warning("no valid fields in deviceLabelFields defined, using the defaults")
        fields = list(fallback)
    return fields


@dataclass
class PciSource(FeatureSource):
    """Reports ``<label>.present`` and ``<label>.sriov.capable`` for whitelisted PCI classes."""

    name: ClassVar[str] = "pci"
    config: PciConfig = field(default_factory=PciConfig)
    host: HostPaths = field(default=DEFAULT_HOST)

    def __post_init__(self) -> None:
        if not isinstance(self.config, PciConfig):
            raise TypeError(f"invalid config type: {type(self.config).__name__}")

    def new_config(self) -> PciConfig:
        return PciConfig()

    def discover(self) -> Features:
        label_fields = _select_label_fields(
            self.config.device_label_fields, DEFAULT_PCI_DEV_ATTRS, _FALLBACK_LABEL_FIELDS
        )
        attrs = {attr: False for attr in EXTRA_PCI_DEV_ATTRS}
        attrs.update({attr: True for attr in label_fields})

        try:
            devices = detect_pci(attrs, self.host)
        except OSError as exc:
            raise OSError(f"failed to detect PCI devices: {exc}") from exc

        whitelist = [white.lower() for white in self.config.device_class_whitelist]
        features: Features = {}
        for device_class, class_devices in devices.items():
            for white in whitelist:
                if not device_class.startswith(white):
                    continue
                for dev in class_devices:
                    label = "_".join(dev.get(attr, "") for attr in label_fields)
                    features[label + ".present"] = True
                    if "sriov_totalvfs" in dev:
                        features[label + ".sriov.capable"] = True
        return features