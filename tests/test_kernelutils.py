import gzip

import pytest

from nodefeatures import kernelutils
from nodefeatures.base import host_paths
from nodefeatures.kernelutils import get_kernel_version, parse_kconfig, read_kconfig

SAMPLE = (
    "# Automatically generated file\n"
    "CONFIG_NO_HZ=y\n"
    "CONFIG_PREEMPT=m\n"
    'CONFIG_LOCALVERSION="custom"\n'
    "# CONFIG_NO_HZ_FULL is not set\n"
    "CONFIG_NR_CPUS=64\n"
)
EXPECTED = {"NO_HZ": "true", "PREEMPT": "true", "LOCALVERSION": "custom", "NR_CPUS": "64"}


@pytest.fixture
def no_proc_config(monkeypatch, tmp_path):
    monkeypatch.setattr(kernelutils, "PROC_CONFIG", str(tmp_path / "missing" / "config.gz"))


def test_get_kernel_version_strips(tmp_path):
    f = tmp_path / "osrelease"
    f.write_text("5.4.0-42-generic\n")
    assert get_kernel_version(str(f)) == "5.4.0-42-generic"


def test_get_kernel_version_missing(tmp_path):
    with pytest.raises(OSError):
        get_kernel_version(str(tmp_path / "nope"))


def test_parse_kconfig_values():
    assert parse_kconfig(SAMPLE) == EXPECTED


def test_parse_kconfig_accepts_bytes():
    assert parse_kconfig(SAMPLE.encode()) == parse_kconfig(SAMPLE)


def test_parse_kconfig_length_limit():
    result = parse_kconfig(f"CONFIG_OK={'a' * 63}\nCONFIG_LONG={'b' * 64}\n")
    assert result == {"OK": "a" * 63}


def test_read_kconfig_explicit_path(tmp_path, no_proc_config):
    f = tmp_path / "config"
    f.write_text(SAMPLE)
    assert read_kconfig(str(f), host_paths(str(tmp_path) + "/"), "1.2.3") == EXPECTED


def test_read_kconfig_gzip(tmp_path, no_proc_config):
    f = tmp_path / "config.gz"
    with gzip.open(f, "wt") as out:
        out.write(SAMPLE)
    assert read_kconfig(str(f), host_paths(str(tmp_path) + "/"), "1.2.3") == EXPECTED


def test_read_kconfig_searches_host_usr(tmp_path, no_proc_config):
    cfg = tmp_path / "usr" / "lib" / "modules" / "1.2.3" / "config"
    cfg.parent.mkdir(parents=True)
    cfg.write_text(SAMPLE)
    assert read_kconfig("", host_paths(str(tmp_path) + "/"), "1.2.3") == EXPECTED


def test_read_kconfig_searches_boot(tmp_path, no_proc_config):
    cfg = tmp_path / "boot" / "config-1.2.3"
    cfg.parent.mkdir(parents=True)
    cfg.write_text("CONFIG_X=y\n")
    assert read_kconfig("", host_paths(str(tmp_path) + "/"), "1.2.3") == {"X": "true"}


def test_read_kconfig_detects_version(tmp_path, monkeypatch, no_proc_config):
    osrelease = tmp_path / "osrelease"
    osrelease.write_text("9.9.9\n")
    monkeypatch.setattr(kernelutils, "KERNEL_VERSION_PATH", str(osrelease))
    cfg = tmp_path / "usr" / "lib" / "kernel" / "config-9.9.9"
    cfg.parent.mkdir(parents=True)
    cfg.write_text("CONFIG_Y=m\n")
    assert read_kconfig("", host_paths(str(tmp_path) + "/")) == {"Y": "true"}


def test_read_kconfig_not_found(tmp_path, no_proc_config):
    with pytest.raises(FileNotFoundError):
        read_kconfig("", host_paths(str(tmp_path) + "/"), "1.2.3")