"""Shared callable types."""

from __future__ import annotations

from collections.abc import Callable

Unsubscribe = Callable[[], None]
"""Cancels a subscription or listener registration. Safe to call twice."""
