"""Scaffold creative-coding sketches and serve them with live reload."""

__version__ = "0.1.0"
