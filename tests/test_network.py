import pytest

from nodefeatures.base import host_paths
from nodefeatures.network import NetworkSource, read_if_flags


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def _host(tmp_path):
    return host_paths(str(tmp_path) + "/")


def _iface(tmp_path, name, flags, total=None, num=None):
    base = tmp_path / "sys/class/net" / name
    _write(base / "flags", flags)
    if total is not None:
        _write(base / "device/sriov_totalvfs", total)
    if num is not None:
        _write(base / "device/sriov_numvfs", num)


def test_read_if_flags_hex(tmp_path):
    _iface(tmp_path, "eth0", "0x1003\n")
    assert read_if_flags(_host(tmp_path), "eth0") == 0x1003


def test_read_if_flags_legacy_octal(tmp_path):
    _iface(tmp_path, "eth0", "010\n")
    assert read_if_flags(_host(tmp_path), "eth0") == 8


def test_read_if_flags_invalid(tmp_path):
    _iface(tmp_path, "eth0", "abc\n")
    with pytest.raises(ValueError):
        read_if_flags(_host(tmp_path), "eth0")


def test_read_if_flags_missing(tmp_path):
    with pytest.raises(OSError):
        read_if_flags(_host(tmp_path), "eth0")


def test_discover_missing_dir(tmp_path):
    with pytest.raises(OSError):
        NetworkSource(host=_host(tmp_path)).discover()


def test_discover_capable_and_configured(tmp_path):
    _iface(tmp_path, "eth0", "0x1003\n", total="8\n", num="2\n")
    features = NetworkSource(host=_host(tmp_path)).discover()
    assert features == {"sriov.capable": True, "sriov.configured": True}


def test_discover_capable_only(tmp_path):
    _iface(tmp_path, "eth0", "0x1003\n", total="8\n", num="0\n")
    assert NetworkSource(host=_host(tmp_path)).discover() == {"sriov.capable": True}


def test_discover_skips_loopback_and_down(tmp_path):
    _iface(tmp_path, "lo", "0x9\n", total="8\n", num="2\n")
    _iface(tmp_path, "eth1", "0x1002\n", total="8\n", num="2\n")
    _iface(tmp_path, "eth2", "0x1003\n")
    assert NetworkSource(host=_host(tmp_path)).discover() == {}


def test_discover_bad_total(tmp_path):
    _iface(tmp_path, "eth0", "0x1003\n", total="many\n", num="2\n")
    assert NetworkSource(host=_host(tmp_path)).discover() == {}