"""Thoughtbox: clinic feedback storage with an audited thought history."""

__version__ = "0.1.0"
