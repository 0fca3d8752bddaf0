"""Publish a local directory tree to blob endpoints and event relays."""

__version__ = "0.4.0"
