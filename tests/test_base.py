import pytest

from nodefeatures.base import FeatureSource, HostDir, HostPaths, host_paths


def test_path_joins_elements():
    assert HostDir("/sys").path("bus/cpu/devices", "cpu0") == "/sys/bus/cpu/devices/cpu0"


def test_path_cleans_trailing_and_double_slashes():
    assert HostDir("/sys").path("class/iommu/") == "/sys/class/iommu"
    assert HostDir("/").path("boot") == "/boot"


def test_path_treats_absolute_elements_as_relative():
    assert HostDir("/host-sys").path("/fs") == "/host-sys/fs"


def test_path_without_elements_is_root():
    assert HostDir("/host-boot").path() == "/host-boot"


def test_host_paths_default_prefix():
    paths = host_paths("/")
    assert paths == HostPaths(
        boot=HostDir("/boot"),
        etc=HostDir("/etc"),
        sysfs=HostDir("/sys"),
        usr=HostDir("/usr"),
    )


def test_host_paths_container_prefix():
    paths = host_paths("/host-")
    assert paths.sysfs.path("block") == "/host-sys/block"
    assert paths.etc.path("os-release") == "/host-etc/os-release"


def test_feature_source_is_abstract():
    with pytest.raises(TypeError):
        FeatureSource()


class _Minimal(FeatureSource):
    name = "minimal"

    def discover(self):
        return {"present": True}


def test_feature_source_default_config_is_none():
    source = _Minimal()
    assert FeatureSource.new_config(source) is None
    assert source.new_config() is None