"""Feature source for user-defined features built from match rules."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Union

import yaml

from .base import FeatureSource, Features
from .rules import (
    CpuIdRule,
    KconfigRule,
    LoadedKmodRule,
    NodenameRule,
    PciIdRule,
    Rule,
    UsbIdRule,
    parse_kconfig_entry,
)

log = logging.getLogger(__name__)

DIRECTORY = "/etc/kubernetes/node-feature-discovery/custom.d"


@dataclass
class MatchRule:
    """A set of rules that must all match; unset rules are ignored."""

    pci_id: Optional[PciIdRule] = None
    usb_id: Optional[UsbIdRule] = None
    loaded_kmod: Optional[LoadedKmodRule] = None
    cpu_id: Optional[CpuIdRule] = None
    kconfig: Optional[KconfigRule] = None
    nodename: Optional[NodenameRule] = None

    def _rules(self) -> List[Rule]:
        candidates = (
            self.pci_id, self.usb_id, self.loaded_kmod,
            self.cpu_id, self.kconfig, self.nodename,
        )
        return [rule for rule in candidates if rule is not None]

    def match(self) -> bool:
        return all(rule.match() for rule in self._rules())


@dataclass
class FeatureSpec:
    """A named feature that is present when any of its match rules matches."""

    name: str
    value: Optional[str] = None
    match_on: List[MatchRule] = field(default_factory=list)

    def matches(self) -> bool:
        return any(rule.match() for rule in self.match_on)


def _strings(value: Any, where: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{where}: expected a list of strings")
    return list(value)


def _mapping(value: Any, allowed: Dict[str, str], where: str) -> Dict[str, List[str]]:
    if not isinstance(value, dict):
        raise ValueError(f"{where}: expected a mapping")
    result: Dict[str, List[str]] = {}
    for key, item in value.items():
        if key not in allowed:
            raise ValueError(f"{where}: unknown field {key!r}")
        result[allowed[key]] = _strings(item, f"{where}.{key}")
    return result


def _pci_rule(value: Any) -> PciIdRule:
    fields = {"class": "classes", "vendor": "vendors", "device": "devices"}
    return PciIdRule(**_mapping(value, fields, "pciId"))


def _usb_rule(value: Any) -> UsbIdRule:
    fields = {"class": "classes", "vendor": "vendors", "device": "devices", "serial": "serials"}
    return UsbIdRule(**_mapping(value, fields, "usbId"))


def _kconfig_rule(value: Any) -> KconfigRule:
    return KconfigRule([parse_kconfig_entry(raw) for raw in _strings(value, "kConfig")])


_RULE_PARSERS = {
    "pciId": ("pci_id", _pci_rule),
    "usbId": ("usb_id", _usb_rule),
    "loadedKMod": ("loaded_kmod", lambda v: LoadedKmodRule(_strings(v, "loadedKMod"))),
    "cpuId": ("cpu_id", lambda v: CpuIdRule(_strings(v, "cpuId"))),
    "kConfig": ("kconfig", _kconfig_rule),
    "nodename": ("nodename", lambda v: NodenameRule(_strings(v, "nodename"))),
}


def _match_rule(item: Any) -> MatchRule:
    if not isinstance(item, dict):
        raise ValueError("matchOn: expected a list of mappings")
    kwargs: Dict[str, Rule] = {}
    for key, value in item.items():
        if key not in _RULE_PARSERS:
            raise ValueError(f"matchOn: unknown field {key!r}")
        if value is None:
            continue
        attr, parse = _RULE_PARSERS[key]
        kwargs[attr] = parse(value)
    return MatchRule(**kwargs)


def _feature_spec(item: Any) -> FeatureSpec:
    if not isinstance(item, dict):
        raise ValueError("expected a list of feature mappings")
    unknown = set(item) - {"name", "value", "matchOn"}
    if unknown:
        raise ValueError(f"unknown field {sorted(unknown)[0]!r}")
    name = item.get("name")
    value = item.get("value")
    match_on = item.get("matchOn")
    if name is None:
        name = ""
    if not isinstance(name, str):
        raise ValueError("name: expected a string")
    if value is not None and not isinstance(value, str):
        raise ValueError("value: expected a string")
    if match_on is None:
        match_on = []
    if not isinstance(match_on, list):
        raise ValueError("matchOn: expected a list")
    return FeatureSpec(name=name, value=value, match_on=[_match_rule(m) for m in match_on])


def parse_feature_specs(data: Union[bytes, str]) -> List[FeatureSpec]:
    """Parse a YAML list of feature specs, rejecting unknown fields and wrong types."""
    try:
        doc = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid YAML: {exc}") from exc
    if doc is None:
        return []
    if not isinstance(doc, list):
        raise ValueError("expected a list of feature specs")
    return [_feature_spec(item) for item in doc]


def read_feature_dir(directory: str = DIRECTORY, recursive: bool = True) -> List[FeatureSpec]:
    """Read feature specs from the files in ``directory``.

    First-level subdirectories are read when ``recursive`` is set; hidden
    files and unreadable or invalid files are skipped.
    """
    features: List[FeatureSpec] = []
    log.debug("getting files in %s", directory)
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except FileNotFoundError:
        log.debug("custom config directory %r does not exist", directory)
        return features
    except OSError as exc:
        log.error("unable to access custom config directory %r, %s", directory, exc)
        return features

    for entry in entries:
        path = os.path.join(directory, entry.name)
        if entry.is_dir(follow_symlinks=False):
            if recursive:
                log.debug("processing dir %r", path)
                features.extend(read_feature_dir(path, False))
            else:
                log.debug("skipping dir %r", path)
            continue
        if entry.name.startswith("."):
            log.debug("skipping hidden file %r", path)
            continue
        log.debug("processing file %r", path)
        try:
            with open(path, "rb") as f:
                raw = f.read()
        except OSError as exc:
            log.error("could not read custom config file %r, %s", path, exc)
            continue
        try:
            features.extend(parse_feature_specs(raw))
        except ValueError as exc:
            log.error("could not parse custom config file %r, %s", path, exc)
    return features


def static_feature_config() -> List[FeatureSpec]:
    """Return the built-in custom features, such as RDMA capability."""
    return [
        FeatureSpec(
            name="rdma.capable",
            match_on=[MatchRule(pci_id=PciIdRule(vendors=["15b3"]))],
        ),
        FeatureSpec(
            name="rdma.available",
            match_on=[MatchRule(loaded_kmod=LoadedKmodRule(["ib_uverbs", "rdma_ucm"]))],
        ),
    ]


@dataclass
class CustomSource(FeatureSource):
    """Reports built-in, configured and directory-defined custom features."""

    name: ClassVar[str] = "custom"
    config: List[FeatureSpec] = field(default_factory=list)
    directory: str = DIRECTORY
    static: List[FeatureSpec] = field(default_factory=static_feature_config)

    def __post_init__(self) -> None:
        if not isinstance(self.config, list):
            raise TypeError(f"invalid config type: {type(self.config).__name__}")

    def new_config(self) -> List[FeatureSpec]:
        return []

    def discover(self) -> Features:
        specs = [*self.static, *self.config, *read_feature_dir(self.directory, True)]
        log.debug("custom features configuration: %s", specs)
        features: Features = {}
        for spec in specs:
            try:
                present = spec.matches()
            except (OSError, ValueError) as exc:
                log.error("failed to discover feature: %r: %s", spec.name, exc)
                continue
            if present:
                features[spec.name] = spec.value if spec.value is not None else True
        return features