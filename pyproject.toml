[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nodefeatures"
version = "0.1.0"
description = "Discover hardware and system features of a Linux node and express them as labels"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = [
    "node",
    "features",
    "discovery",
    "sysfs",
    "labels",
    "cpuid",
    "pci",
    "usb",
    "kconfig",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["nodefeatures"]

[tool.hatch.build.targets.sdist]
include = [
    "nodefeatures",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
