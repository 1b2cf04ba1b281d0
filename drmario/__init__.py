"""Pill Duel: two-player falling-pill matcher with a shared seed and damage relay."""

__version__ = "0.1.0"
