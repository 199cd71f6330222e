import pytest

from nodefeatures.base import host_paths
from nodefeatures.kernel import KernelConfig, KernelSource, parse_version, selinux_enabled


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def _host(tmp_path):
    return host_paths(str(tmp_path) + "/")


def test_parse_version_full_release():
    version = parse_version("5.4.0-42-generic")
    assert version == {
        "full": "5.4.0-42-generic",
        "major": "5",
        "minor": "4",
        "revision": "0",
    }


def test_parse_version_missing_revision_is_empty():
    version = parse_version("4.19")
    assert version["major"] == "4"
    assert version["minor"] == "19"
    assert version["revision"] == ""


def test_parse_version_sanitizes():
    version = parse_version("-weird+ver.")
    assert version == {"full": "weird_ver"}


def test_selinux_missing_sysfs(tmp_path):
    with pytest.raises(OSError):
        selinux_enabled(_host(tmp_path))


def test_selinux_not_available(tmp_path):
    (tmp_path / "sys/fs").mkdir(parents=True)
    assert selinux_enabled(_host(tmp_path)) is False


@pytest.mark.parametrize("status,expected", [("1\n", True), ("0\n", False)])
def test_selinux_enforce(tmp_path, status, expected):
    _write(tmp_path / "sys/fs/selinux/enforce", status)
    assert selinux_enabled(_host(tmp_path)) is expected


def test_new_config_defaults():
    config = KernelSource().new_config()
    assert config.kconfig_file == ""
    assert config.config_opts == ["NO_HZ", "NO_HZ_IDLE", "NO_HZ_FULL", "PREEMPT"]


def test_invalid_config_type():
    with pytest.raises(TypeError):
        KernelSource(config=[])


def test_discover(tmp_path):
    kconfig = tmp_path / "kconfig"
    kconfig.write_text("CONFIG_NO_HZ=y\nCONFIG_PREEMPT=m\n# CONFIG_NO_HZ_IDLE is not set\n")
    release = tmp_path / "osrelease"
    release.write_text("5.10.0-8-amd64\n")
    _write(tmp_path / "sys/fs/selinux/enforce", "1")

    src = KernelSource(
        config=KernelConfig(kconfig_file=str(kconfig)),
        host=_host(tmp_path),
        kernel_version_path=str(release),
    )
    assert src.discover() == {
        "version.full": "5.10.0-8-amd64",
        "version.major": "5",
        "version.minor": "10",
        "version.revision": "0",
        "config.NO_HZ": "true",
        "config.PREEMPT": "true",
        "selinux.enabled": True,
    }