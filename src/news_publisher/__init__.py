"""Automated news drafting and multi-site WordPress publishing."""

__version__ = "0.1.0"
