"""
Core business logic package for Tomatonator.

Contains the headless BlockerEngine, its coordinator and enforcement state
machine, and platform permission checks. Zero UI dependencies.
"""

from core.engine import BlockerEngine

__all__ = ["BlockerEngine"]
