"""Modpack installer: install and update a modpack from a declarative manifest."""

__version__ = "0.3.0"
