"""Identifier generators.

Patterns, recommendations and error reports get their ids from an injected
:class:`~cubems.services.protocols.IdGenerator` so tests can pin them.
"""

from __future__ import annotations

import itertools
import secrets
import threading
import time
import uuid


class UuidIdGenerator:
    """Default generator: ``<prefix>_<uuid4 hex>``."""

    def new_id(self, prefix: str) -> str:
        return f"{prefix}_{uuid.uuid4().hex}"


class SequentialIdGenerator:
    """Deterministic generator for tests: ``<prefix>_000001``, ``<prefix>_000002`` ..."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def new_id(self, prefix: str) -> str:
        with self._lock:
            return f"{prefix}_{next(self._counter):06d}"


def error_id(prefix: str) -> str:
    """Trackable error id of the form ``<prefix>_<epoch ms>_<random>``."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"
