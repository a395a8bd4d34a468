"""
Reentrancy guard for the evaluator.

Anything the evaluator triggers (a sink writing advice through the same
session, say) must not start another evaluation. The guard counts nested
entries and is released on every exit path.

Usage:
    guard = ReentrancyGuard()
    with guard.enter() as outermost:
        if not outermost:
            return
        ...
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator


class ReentrancyGuard:
    """Nesting counter scoped to one evaluator."""

    def __init__(self) -> None:
        self._depth = 0

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def active(self) -> bool:
        return self._depth > 0

    @contextmanager
    def enter(self) -> Iterator[bool]:
        """Yield True for the outermost entry, False for nested ones."""
        self._depth += 1
        try:
            yield self._depth == 1
        finally:
            self._depth -= 1
