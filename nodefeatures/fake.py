"""A feature source that reports configured, made-up labels."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Dict

from .base import FeatureSource, Features


def _default_labels() -> Dict[str, str]:
    return {
        "fakefeature1": "true",
        "fakefeature2": "true",
        "fakefeature3": "true",
    }


@dataclass
class FakeConfig:
    labels: Dict[str, str] = field(default_factory=_default_labels)


@dataclass
class FakeSource(FeatureSource):
    """Reports the labels of its configuration as features."""

    name: ClassVar[str] = "fake"
    config: FakeConfig = field(default_factory=FakeConfig)

    def __post_init__(self) -> None:
        if not isinstance(self.config, FakeConfig):
            raise TypeError(f"invalid config type: {type(self.config).__name__}")

    def new_config(self) -> FakeConfig:
        return FakeConfig()

    def discover(self) -> Features:
        return dict(self.config.labels)