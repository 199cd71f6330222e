import pytest

from nodefeatures.base import host_paths
from nodefeatures.storage import StorageSource


@pytest.fixture
def host(tmp_path):
    return host_paths(f"{tmp_path}/")


def _add_disk(tmp_path, name, rotational):
    queue = tmp_path / "sys" / "block" / name / "queue"
    queue.mkdir(parents=True)
    (queue / "rotational").write_text(rotational)


def test_missing_block_dir(host):
    assert StorageSource(host=host).discover() == {}


def test_only_rotational(tmp_path, host):
    _add_disk(tmp_path, "sda", "1\n")
    assert StorageSource(host=host).discover() == {}


def test_non_rotational_present(tmp_path, host):
    _add_disk(tmp_path, "sda", "1\n")
    _add_disk(tmp_path, "sdb", "0\n")
    assert StorageSource(host=host).discover() == {"nonrotationaldisk": True}


def test_unreadable_rotational_raises(tmp_path, host):
    (tmp_path / "sys" / "block" / "sda").mkdir(parents=True)
    with pytest.raises(OSError, match="can't read rotational status"):
        StorageSource(host=host).discover()