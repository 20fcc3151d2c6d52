"""Cooperative cancellation for requests and multipart sessions.

A client may be constructed with a :class:`CancellationToken`; every call
it makes checks the token before sending, races the in-flight request
against it, and streaming reads check it at each chunk boundary. A
multipart session derives a :meth:`CancellationToken.child` so that a
failing part stops only its own session.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from s3lite.core.errors import AbortedError


class CancellationToken:
    """Event-backed cancellation token for one event loop.

    Examples:
        >>> token = CancellationToken()
        >>> session = token.child()
        >>> token.cancel("shutting down")
        >>> session.is_cancelled()
        True
    """

    __slots__ = ("_event", "_reason", "_children", "_parent")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._children: list[CancellationToken] = []
        self._parent: Optional[CancellationToken] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        """Signal cancellation to this token and all of its children."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        for child in self._children:
            child.cancel(reason)
        self._children.clear()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise AbortedError when cancellation has been requested."""
        if self._event.is_set():
            raise AbortedError.cancelled(self._reason)

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def child(self) -> CancellationToken:
        """Create a token that is cancelled whenever this one is.

        Cancelling the child does not affect the parent.
        """
        token = CancellationToken()
        if self.is_cancelled():
            token.cancel(self._reason)
        else:
            token._parent = self
            self._children.append(token)
        return token

    def release(self) -> None:
        """Detach from the parent once the owning operation has finished."""
        parent, self._parent = self._parent, None
        if parent is not None and self in parent._children:
            parent._children.remove(self)


def child_token(parent: Optional[CancellationToken]) -> CancellationToken:
    """Child of `parent`, or a fresh root token when there is none."""
    return parent.child() if parent is not None else CancellationToken()


__all__ = ["CancellationToken", "child_token"]
