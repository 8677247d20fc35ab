import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    identity: str
    ws: Any
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConnectionRegistry:
    """Maps session identities to live connections.

    Every operation is a single step under one lock, so a lookup never sees a
    half-updated mapping even if register/remove run from another thread.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Dict[str, Connection] = {}

    def register(self, identity: str, ws) -> Connection:
        conn = Connection(identity=identity, ws=ws)
        with self._lock:
            previous = self._connections.get(identity)
            self._connections[identity] = conn
        if previous is not None and previous.ws is not ws:
            logger.info(f"Identity {identity} re-registered, replacing previous connection")
        return conn

    def lookup(self, identity: str) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(identity)

    def remove(self, identity: str, ws=None) -> bool:
        """Drop the mapping for identity.

        When ws is given the entry is only removed if it still belongs to that
        connection; a stale disconnect must not evict a newer registration.
        """
        with self._lock:
            current = self._connections.get(identity)
            if current is None:
                return False
            if ws is not None and current.ws is not ws:
                return False
            del self._connections[identity]
            return True

    def identities(self):
        with self._lock:
            return list(self._connections.keys())

    def __len__(self):
        with self._lock:
            return len(self._connections)

    def __contains__(self, identity):
        with self._lock:
            return identity in self._connections
