"""Enumerating PCI and USB devices from sysfs."""

from __future__ import annotations

import glob
import logging
import os
from typing import Dict, List, Mapping, Optional

from .base import DEFAULT_HOST, HostPaths

log = logging.getLogger(__name__)

DeviceInfo = Dict[str, str]

DEFAULT_PCI_DEV_ATTRS = ("class", "vendor", "device", "subsystem_vendor", "subsystem_device")
EXTRA_PCI_DEV_ATTRS = ("sriov_totalvfs",)
DEFAULT_USB_DEV_ATTRS = ("class", "vendor", "device", "serial")

# USB sysfs file names for the attribute names shared with PCI.
_USB_ATTR_FILES = {
    "class": "bDeviceClass",
    "device": "idProduct",
    "vendor": "idVendor",
    "serial": "serial",
}


def read_pci_attribute(dev_path: str, name: str) -> str:
    """Read one PCI attribute file, without its ``0x`` prefix.

    The class code is cut to its first four characters.
    """
    try:
        with open(os.path.join(dev_path, name), encoding="utf-8", errors="replace") as f:
            data = f.read()
    except OSError as exc:
        raise OSError(f"failed to read device attribute {name}: {exc}") from exc
    value = data.removeprefix("0x").strip()
    if name == "class" and len(value) > 4:
        value = value[:4]
    return value


def read_pci_device(dev_path: str, attr_spec: Mapping[str, bool]) -> DeviceInfo:
    """Read the attributes of one PCI device.

    Attributes mapped to True are mandatory and raise OSError when unreadable;
    optional ones are left out.
    """
    info: DeviceInfo = {}
    for attr, must in attr_spec.items():
        try:
            info[attr] = read_pci_attribute(dev_path, attr)
        except OSError as exc:
            if must:
                raise OSError(f"failed to read device {attr}: {exc}") from exc
    return info


def detect_pci(
    attr_spec: Mapping[str, bool], host: Optional[HostPaths] = None
) -> Dict[str, List[DeviceInfo]]:
    """List PCI devices grouped by class; ``class`` is always mandatory."""
    host = host or DEFAULT_HOST
    base = host.sysfs.path("bus/pci/devices")
    spec = {**attr_spec, "class": True}
    devices: Dict[str, List[DeviceInfo]] = {}
    for name in sorted(os.listdir(base)):
        try:
            info = read_pci_device(os.path.join(base, name), spec)
        except OSError as exc:
            log.error("%s", exc)
            continue
        devices.setdefault(info["class"], []).append(info)
    return devices


def _read_usb_sysfs(path: str) -> str:
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return f.read().strip()
    except OSError as exc:
        raise OSError(
            f"failed to read device attribute {os.path.basename(path)}: {exc}"
        ) from exc


def read_usb_device(dev_path: str, attr_spec: Mapping[str, bool]) -> Dict[str, DeviceInfo]:
    """Read one USB device, keyed by class.

    A device whose class is ``00`` is reported once per interface class.
    """
    info: DeviceInfo = {}
    for attr in attr_spec:
        filename = _USB_ATTR_FILES.get(attr)
        if filename is None:
            continue
        try:
            value = _read_usb_sysfs(os.path.join(dev_path, filename))
        except OSError:
            continue
        if value:
            info[attr] = value

    device_class = info.get("class", "")
    if device_class != "00":
        return {device_class: info}

    classes: Dict[str, DeviceInfo] = {}
    pattern = os.path.join(glob.escape(dev_path), "*", "bInterfaceClass")
    for intf in sorted(glob.glob(pattern)):
        intf_class = _read_usb_sysfs(intf)
        classes[intf_class] = {**info, "class": intf_class}
    return classes


def detect_usb(
    attr_spec: Mapping[str, bool], sysfs_root: str = "/sys"
) -> Dict[str, List[DeviceInfo]]:
    """List USB devices grouped by class; ``class`` is always mandatory."""
    pattern = os.path.join(glob.escape(sysfs_root), "bus", "usb", "devices", "*", "idProduct")
    spec = {**attr_spec, "class": True}
    devices: Dict[str, List[DeviceInfo]] = {}
    for product_file in sorted(glob.glob(pattern)):
        try:
            by_class = read_usb_device(os.path.dirname(product_file), spec)
        except OSError as exc:
            log.error("%s", exc)
            continue
        for device_class, info in by_class.items():
            devices.setdefault(device_class, []).append(info)
    return devices