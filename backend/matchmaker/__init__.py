"""Matchmaker: autonomous arena scheduler for AI gladiator agents."""

__version__ = "0.1.0"
__author__ = "Matchmaker Team"

__all__ = ["__version__", "__author__"]
