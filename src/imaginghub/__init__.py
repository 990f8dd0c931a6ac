"""Imaging Hub: passwordless cross-device sign-in."""

__version__ = "0.1.0"
