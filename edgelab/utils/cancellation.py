"""Cooperative cancellation for long-running searches.

Workers never get interrupted mid-unit: loops check the token between
generations, periods, batches or paths, stop scheduling new work and
return whatever was already computed.
"""

from __future__ import annotations

import threading


class CancellationToken:
    """Thread-safe cancel flag shared between a caller and a running search."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def is_cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.cancelled
