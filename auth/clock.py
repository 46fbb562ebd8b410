"""
auth/clock.py -- The UTC clock injected into the service and token issuer.

A clock is any zero-argument callable returning an aware UTC datetime. Tests
pass a lambda returning a fixed instant; production uses utc_now.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
