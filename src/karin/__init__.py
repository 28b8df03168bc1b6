"""Ley Karin legal process and deadline engine."""

__version__ = "0.1.0"
