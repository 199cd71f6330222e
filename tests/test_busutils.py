import pytest

from nodefeatures.base import host_paths
from nodefeatures.busutils import (
    detect_pci,
    detect_usb,
    read_pci_attribute,
    read_pci_device,
    read_usb_device,
)


def _write(directory, files):
    directory.mkdir(parents=True, exist_ok=True)
    for name, content in files.items():
        (directory / name).write_text(content)
    return directory


@pytest.fixture
def pci_root(tmp_path):
    base = tmp_path / "sys" / "bus" / "pci" / "devices"
    _write(base / "0000:00:02.0", {"class": "0x030000\n", "vendor": "0x8086\n", "device": "0x1111\n"})
    _write(base / "0000:00:03.0", {"class": "0x020000\n", "vendor": "0x15b3\n", "device": "0x2222\n",
                                   "sriov_totalvfs": "8\n"})
    _write(base / "0000:00:04.0", {"class": "0x030000\n"})
    return tmp_path


def test_read_pci_attribute_strips_prefix(pci_root):
    dev = pci_root / "sys" / "bus" / "pci" / "devices" / "0000:00:02.0"
    assert read_pci_attribute(str(dev), "vendor") == "8086"
    assert read_pci_attribute(str(dev), "class") == "0300"


def test_read_pci_attribute_missing(tmp_path):
    with pytest.raises(OSError, match="vendor"):
        read_pci_attribute(str(tmp_path), "vendor")


def test_read_pci_device_optional_and_mandatory(pci_root):
    dev = str(pci_root / "sys" / "bus" / "pci" / "devices" / "0000:00:04.0")
    assert read_pci_device(dev, {"class": True, "vendor": False}) == {"class": "0300"}
    with pytest.raises(OSError):
        read_pci_device(dev, {"class": True, "vendor": True})


def test_detect_pci_groups_by_class(pci_root):
    spec = {"vendor": True, "sriov_totalvfs": False}
    result = detect_pci(spec, host_paths(str(pci_root) + "/"))
    assert result == {
        "0300": [{"class": "0300", "vendor": "8086"}],
        "0200": [{"class": "0200", "vendor": "15b3", "sriov_totalvfs": "8"}],
    }
    assert spec == {"vendor": True, "sriov_totalvfs": False}


def test_detect_pci_missing_dir(tmp_path):
    with pytest.raises(OSError):
        detect_pci({}, host_paths(str(tmp_path) + "/"))


@pytest.fixture
def usb_root(tmp_path):
    base = tmp_path / "bus" / "usb" / "devices"
    _write(base / "1-1", {"idProduct": "aaaa\n", "idVendor": "bbbb\n", "bDeviceClass": "ef\n"})
    composite = _write(base / "1-2", {"idProduct": "cccc\n", "idVendor": "dddd\n",
                                      "bDeviceClass": "00\n", "serial": "SERIAL0\n"})
    _write(composite / "1-2:1.0", {"bInterfaceClass": "03\n"})
    _write(composite / "1-2:1.1", {"bInterfaceClass": "0e\n"})
    _write(base / "usb1-port1", {"bDeviceClass": "09\n"})
    return tmp_path


def test_read_usb_device_plain(usb_root):
    dev = str(usb_root / "bus" / "usb" / "devices" / "1-1")
    result = read_usb_device(dev, {"class": True, "vendor": True, "device": True, "serial": True})
    assert result == {"ef": {"class": "ef", "vendor": "bbbb", "device": "aaaa"}}


def test_read_usb_device_interfaces(usb_root):
    dev = str(usb_root / "bus" / "usb" / "devices" / "1-2")
    result = read_usb_device(dev, {"class": True, "vendor": True})
    assert result == {
        "03": {"class": "03", "vendor": "dddd"},
        "0e": {"class": "0e", "vendor": "dddd"},
    }


def test_detect_usb(usb_root):
    result = detect_usb({"vendor": True, "device": True, "serial": True}, str(usb_root))
    assert set(result) == {"ef", "03", "0e"}
    assert result["0e"] == [{"class": "0e", "vendor": "dddd", "device": "cccc", "serial": "SERIAL0"}]
    assert all(info["class"] == cls for cls, infos in result.items() for info in infos)


def test_detect_usb_empty(tmp_path):
    assert detect_usb({"vendor": True}, str(tmp_path)) == {}