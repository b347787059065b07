"""
Real-time room relay.

Sockets join named rooms (one per conversation) and anything sent to a room
is forwarded to every other socket in it. Nothing is stored or retried; a
peer that is not connected simply misses the frame.
"""
import logging
from typing import Dict, Set

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class RoomRelay:
    def __init__(self):
        self.rooms: Dict[str, Set[WebSocket]] = {}

    def join(self, room: str, websocket: WebSocket) -> None:
        self.rooms.setdefault(room, set()).add(websocket)
        logger.info("Socket joined room %s (%d members)", room, len(self.rooms[room]))

    def leave(self, room: str, websocket: WebSocket) -> None:
        members = self.rooms.get(room)
        if not members:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[room]

    def disconnect(self, websocket: WebSocket) -> None:
        for room in list(self.rooms):
            self.leave(room, websocket)

    def members(self, room: str) -> int:
        return len(self.rooms.get(room, ()))

    async def broadcast(self, room: str, frame: dict, sender: WebSocket) -> int:
        delivered = 0
        for peer in list(self.rooms.get(room, ())):
            if peer is sender:
                continue
            try:
                await peer.send_json(frame)
                delivered += 1
            except (RuntimeError, WebSocketDisconnect):
                # peer went away between join and send
                self.disconnect(peer)
        return delivered
