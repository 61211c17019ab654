"""Cooperative cancellation token."""

import asyncio


class CancellationToken:
    """One-way flag checked before every new external call.

    Setting the token never interrupts a call already in flight; it only stops
    new calls from being issued.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
