"""Feature source reading labels from hook programs and feature files."""

from __future__ import annotations

import logging
import os
import stat
import subprocess
from dataclasses import dataclass
from typing import ClassVar, Dict, Iterable, List

from .base import FeatureSource, Features

log = logging.getLogger(__name__)

FEATURE_FILES_DIR = "/etc/kubernetes/node-feature-discovery/features.d/"
HOOK_DIR = "/etc/kubernetes/node-feature-discovery/source.d/"


def parse_features(lines: Iterable[str], prefix: str) -> Dict[str, str]:
    """Parse ``name[=value]`` lines into features.

    Names without a ``/`` get ``<prefix>-`` prepended; a leading ``/`` is
    dropped. A name without a value maps to ``"true"``.
    """
    features: Dict[str, str] = {}
    for line in lines:
        if not line:
            continue
        key, sep, value = line.partition("=")
        if "/" in key:
            key = key[1:] if key.startswith("/") else key
        else:
            key = f"{prefix}-{key}"
        features[key] = value if sep else "true"
    return features


def run_hook(path: str) -> List[str]:
    """Run a hook program and return its output lines.

    Non-regular files yield no lines. Raises OSError when the hook cannot be
    started and CalledProcessError when it exits with a failure.
    """
    try:
        st = os.stat(path)
    except OSError as exc:
        log.error("skipping %s, failed to get stat: %s", path, exc)
        raise
    if not stat.S_ISREG(st.st_mode):
        return []

    result = subprocess.run([path], capture_output=True, check=False)

    name = os.path.basename(path)
    err_lines = result.stderr.decode("utf-8", errors="replace").split("\n")
    if err_lines[-1] == "":
        err_lines.pop()
    for line in err_lines:
        log.error("%s: %s", name, line)

    if result.returncode != 0:
        raise subprocess.CalledProcessError(
            result.returncode, path, result.stdout, result.stderr
        )
    return result.stdout.decode("utf-8", errors="replace").split("\n")


def _file_lines(path: str) -> List[str]:
    try:
        st = os.stat(path)
    except OSError as exc:
        log.error("skipping %s, failed to get stat: %s", path, exc)
        raise
    if not stat.S_ISREG(st.st_mode):
        return []
    with open(path, "rb") as f:
        return f.read().decode("utf-8", errors="replace").split("\n")


def _list_dir(directory: str, what: str) -> List[str]:
    try:
        return sorted(os.listdir(directory))
    except FileNotFoundError:
        log.info("%s directory %s does not exist", what, directory)
        return []
    except OSError as exc:
        raise OSError(f"unable to access {directory}: {exc}") from exc


def _merge(features: Dict[str, str], new: Dict[str, str], origin: str, what: str) -> None:
    for key, value in new.items():
        if key in features:
            log.warning(
                "overriding label '%s' from another %s (%s): value changed from '%s' to '%s'",
                key, what, origin, features[key], value,
            )
        features[key] = value


def features_from_hooks(hook_dir: str = HOOK_DIR) -> Dict[str, str]:
    """Run every hook in ``hook_dir`` and collect the features they print."""
    features: Dict[str, str] = {}
    for name in _list_dir(hook_dir, "hook"):
        try:
            lines = run_hook(os.path.join(hook_dir, name))
        except (OSError, subprocess.SubprocessError) as exc:
            log.error("source local failed running hook '%s': %s", name, exc)
            continue
        _merge(features, parse_features(lines, name), name, "hook")
    return features


def features_from_files(features_dir: str = FEATURE_FILES_DIR) -> Dict[str, str]:
    """Read every file in ``features_dir`` and collect the features listed."""
    features: Dict[str, str] = {}
    for name in _list_dir(features_dir, "features"):
        try:
            lines = _file_lines(os.path.join(features_dir, name))
        except OSError as exc:
            log.error("source local failed reading file '%s': %s", name, exc)
            continue
        _merge(features, parse_features(lines, name), name, "features.d file")
    return features


@dataclass
class LocalSource(FeatureSource):
    """Reports features from hooks and feature files; hooks win on conflicts."""

    name: ClassVar[str] = "local"
    hook_dir: str = HOOK_DIR
    features_dir: str = FEATURE_FILES_DIR

    def discover(self) -> Features:
        try:
            from_hooks = features_from_hooks(self.hook_dir)
        except OSError as exc:
            log.error("%s", exc)
            from_hooks = {}
        try:
            from_files = features_from_files(self.features_dir)
        except OSError as exc:
            log.error("%s", exc)
            from_files = {}

        features: Features = dict(from_files)
        for key, value in from_hooks.items():
            if key in features:
                log.warning(
                    "overriding label '%s': value changed from '%s' to '%s'",
                    key, features[key], value,
                )
            features[key] = value
        return features