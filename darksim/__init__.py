"""Lightweight package initializer for darksim.

Avoid importing submodules at import time so that worker processes spawned by
the optimizer only pay for what they use.
"""

__all__ = []
