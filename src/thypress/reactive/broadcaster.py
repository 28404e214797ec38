"""Live-reload broadcaster — pushes reload signals to connected browsers.

Each browser holding the live-reload stream open is one
:class:`LiveReloadClient`.  A broadcast enqueues the event on every
client's queue without waiting; a client whose queue is full is dropped
rather than slowing down the mutator.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from thypress._types import ClientID

# Per-client backlog before the client is considered stalled
CLIENT_QUEUE_SIZE = 16


@dataclass(frozen=True, slots=True)
class ServerEvent:
    """One server-sent event.

    Attributes:
        event: Event name (``connected``, ``reload``).
        data: Payload line.

    """

    event: str
    data: str = ""

    def encode(self) -> str:
        return f"event: {self.event}\ndata: {self.data or self.event}\n\n"


@dataclass(frozen=True, slots=True)
class LiveReloadClient:
    """A connected live-reload stream.

    Attributes:
        client_id: Unique identifier for this connection.
        queue: Events waiting to be written to the stream.

    """

    client_id: ClientID
    queue: asyncio.Queue[ServerEvent] = field(
        default_factory=lambda: asyncio.Queue(maxsize=CLIENT_QUEUE_SIZE),
        compare=False,
        hash=False,
    )


class Broadcaster:
    """Registry of live-reload clients.

    Thread Safety:
        The client map is protected by a ``threading.Lock``; broadcasts
        take a snapshot and enqueue outside the lock.

    """

    def __init__(self) -> None:
        self._clients: dict[ClientID, LiveReloadClient] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def register(self) -> LiveReloadClient:
        """Create and register a new client."""
        client = LiveReloadClient(client_id=f"client-{next(self._ids)}")
        with self._lock:
            self._clients[client.client_id] = client
        return client

    def unregister(self, client: LiveReloadClient) -> None:
        with self._lock:
            self._clients.pop(client.client_id, None)

    def clients(self) -> tuple[LiveReloadClient, ...]:
        """Snapshot of the connected clients (no lock held on return)."""
        with self._lock:
            return tuple(self._clients.values())

    def broadcast(self, event: ServerEvent) -> int:
        """Enqueue *event* for every client; returns the number notified."""
        count = 0
        for client in self.clients():
            try:
                client.queue.put_nowait(event)
                count += 1
            except asyncio.QueueFull:
                self.unregister(client)
        return count

    def reload(self) -> int:
        """Tell every browser to reload."""
        return self.broadcast(ServerEvent("reload"))

