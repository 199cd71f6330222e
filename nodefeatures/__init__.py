"""Discovery of hardware and system features of a Linux node, reported as labels."""

__version__ = "0.1.0"