import subprocess

import pytest

from nodefeatures.local import (
    LocalSource,
    features_from_files,
    features_from_hooks,
    parse_features,
    run_hook,
)


def _write_hook(directory, name, body, executable=True):
    path = directory / name
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755 if executable else 0o644)
    return path


def test_parse_features_prefix_and_values():
    lines = ["a=b", "c", "vendor.io/x=y", "/abs=v", ""]
    assert parse_features(lines, "file") == {
        "file-a": "b",
        "file-c": "true",
        "vendor.io/x": "y",
        "abs": "v",
    }


def test_parse_features_splits_on_first_equals_only():
    assert parse_features(["key=b=c"], "p") == {"p-key": "b=c"}


def test_parse_features_empty_value():
    assert parse_features(["key="], "p") == {"p-key": ""}


def test_features_from_files(tmp_path):
    (tmp_path / "first").write_text("a=1\nb\n")
    (tmp_path / "second").write_text("ns.io/c=2\n")
    assert features_from_files(str(tmp_path)) == {
        "first-a": "1",
        "first-b": "true",
        "ns.io/c": "2",
    }


def test_later_file_overrides_earlier(tmp_path):
    (tmp_path / "a").write_text("ns.io/k=old\n")
    (tmp_path / "b").write_text("ns.io/k=new\n")
    assert features_from_files(str(tmp_path)) == {"ns.io/k": "new"}


def test_directories_in_features_dir_are_ignored(tmp_path):
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "inner").write_text("x=1\n")
    assert features_from_files(str(tmp_path)) == {}


def test_missing_features_dir_gives_nothing(tmp_path):
    assert features_from_files(str(tmp_path / "absent")) == {}


def test_unreadable_features_dir_raises(tmp_path):
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("")
    with pytest.raises(OSError, match="unable to access"):
        features_from_files(str(not_a_dir))


def test_run_hook_returns_stdout_lines(tmp_path):
    hook = _write_hook(tmp_path, "hook", "echo foo=bar\necho oops >&2")
    assert run_hook(str(hook)) == ["foo=bar", ""]


def test_run_hook_failure_raises(tmp_path):
    hook = _write_hook(tmp_path, "bad", "echo x=1\nexit 3")
    with pytest.raises(subprocess.CalledProcessError) as info:
        run_hook(str(hook))
    assert info.value.returncode == 3


def test_run_hook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        run_hook(str(tmp_path / "absent"))


def test_run_hook_on_directory_gives_no_lines(tmp_path):
    (tmp_path / "dir").mkdir()
    assert run_hook(str(tmp_path / "dir")) == []


def test_features_from_hooks_skips_failing_hooks(tmp_path):
    _write_hook(tmp_path, "good", "echo feature\necho ns.io/v=1")
    _write_hook(tmp_path, "failing", "echo x=1\nexit 1")
    _write_hook(tmp_path, "noexec", "echo y=1", executable=False)
    assert features_from_hooks(str(tmp_path)) == {"good-feature": "true", "ns.io/v": "1"}


def test_missing_hook_dir_gives_nothing(tmp_path):
    assert features_from_hooks(str(tmp_path / "absent")) == {}


def test_local_source_hooks_override_files(tmp_path):
    hooks = tmp_path / "hooks"
    files = tmp_path / "files"
    hooks.mkdir()
    files.mkdir()
    _write_hook(hooks, "hook", "echo ns.io/shared=from-hook")
    (files / "file").write_text("ns.io/shared=from-file\nonly\n")
    source = LocalSource(hook_dir=str(hooks), features_dir=str(files))
    assert source.discover() == {"ns.io/shared": "from-hook", "file-only": "true"}


def test_local_source_with_missing_dirs_is_empty(tmp_path):
    source = LocalSource(hook_dir=str(tmp_path / "h"), features_dir=str(tmp_path / "f"))
    assert source.discover() == {}