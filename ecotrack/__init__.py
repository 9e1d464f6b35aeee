"""Ecosystem tracker: adoption and build-compatibility history for a compiler toolchain."""

__version__ = "0.1.0"
