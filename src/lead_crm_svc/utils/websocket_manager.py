import json
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from fastapi.websockets import WebSocket

_logger = logging.getLogger(__name__)


class ConnectionManager:
    """Track live websocket connections per user and push JSON events.

    A user may hold several connections (tabs). Failing sockets are dropped.
    """

    def __init__(self) -> None:
        self.active_connections: Dict[int, Set[WebSocket]] = defaultdict(set)

    async def connect(self, websocket: WebSocket, user_id: int) -> None:
        try:
            await websocket.accept()
            self.active_connections[user_id].add(websocket)
        except Exception as e:
            _logger.error(e, exc_info=True)
            raise

    def disconnect(self, websocket: WebSocket, user_id: Optional[int] = None) -> None:
        """Forget a connection. No-op if it is not tracked."""
        user_ids = [user_id] if user_id is not None else list(self.active_connections)
        for uid in user_ids:
            sockets = self.active_connections.get(uid)
            if not sockets:
                continue
            sockets.discard(websocket)
            if not sockets:
                self.active_connections.pop(uid, None)

    def connection_count(self) -> int:
        return sum(len(s) for s in self.active_connections.values())

    async def _send(self, sockets: List[Tuple[int, WebSocket]], payload: dict) -> None:
        message = json.dumps(payload, default=str)
        failed = []
        for uid, ws in sockets:
            try:
                await ws.send_text(message)
            except Exception as e:
                _logger.error(e, exc_info=True)
                failed.append((uid, ws))

        for uid, ws in failed:
            self.disconnect(ws, uid)

    async def send_to_users(self, user_ids: Iterable[int], payload: dict) -> None:
        """Send ``payload`` to the given users only. No targets, no sends."""
        targets = sorted({int(u) for u in user_ids if u is not None})
        sockets = [(uid, ws) for uid in targets for ws in list(self.active_connections.get(uid, ()))]
        await self._send(sockets, payload)

    async def broadcast(self, payload: dict) -> None:
        sockets = [(uid, ws) for uid, conns in list(self.active_connections.items()) for ws in list(conns)]
        await self._send(sockets, payload)


# Module-level singleton used by the notification service and the ws router
manager = ConnectionManager()
