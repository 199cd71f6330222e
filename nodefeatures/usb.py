"""Feature source for USB devices of selected classes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import ClassVar, Iterable, List, Sequence

from .base import FeatureSource, Features
from .busutils import DEFAULT_USB_DEV_ATTRS, detect_usb

log = logging.getLogger(__name__)

_FALLBACK_LABEL_FIELDS = ("vendor", "device")


def _default_class_whitelist() -> List[str]:
    # Video, Miscellaneous, Application Specific and Vendor Specific classes.
    return ["0e", "ef", "fe", "ff"]


def _default_label_fields() -> List[str]:
    return ["class", "vendor", "device"]


@dataclass
class UsbConfig:
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
class UsbSource(FeatureSource):
    """Reports ``<label>.present`` for USB devices of whitelisted classes."""

    name: ClassVar[str] = "usb"
    config: UsbConfig = field(default_factory=UsbConfig)
    sysfs_root: str = "/sys"

    def __post_init__(self) -> None:
        if not isinstance(self.config, UsbConfig):
            raise TypeError(f"invalid config type: {type(self.config).__name__}")

    def new_config(self) -> UsbConfig:
        return UsbConfig()

    def discover(self) -> Features:
        label_fields = _select_label_fields(
            self.config.device_label_fields, DEFAULT_USB_DEV_ATTRS, _FALLBACK_LABEL_FIELDS
        )
        attrs = {attr: True for attr in label_fields}

        try:
            devices = detect_usb(attrs, self.sysfs_root)
        except OSError as exc:
            raise OSError(f"failed to detect USB devices: {exc}") from exc

        whitelist = [white.lower() for white in self.config.device_class_whitelist]
        features: Features = {}
        for device_class, class_devices in devices.items():
            for white in whitelist:
                if not device_class.startswith(white):
                    continue
                for dev in class_devices:
                    label = "_".join(dev.get(attr, "") for attr in label_fields)
                    features[label + ".present"] = True
        return features