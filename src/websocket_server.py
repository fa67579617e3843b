"""
src/websocket_server.py

WebSocket Server for Real-Time Delta Streaming

Alternative push channel to the SSE endpoint. A client subscribes to a
session created over REST and receives the same delta/end events as JSON
frames. Closing the socket or sending a cancel message stops the session.

The generation loop is blocking (it waits on a threading.Event), so each
step is pulled on an executor thread while the event loop keeps reading
client messages.
"""

import asyncio
import json
import logging
from typing import Optional, Set

import websockets
from websockets.asyncio.server import ServerConnection, serve

from constants import WS_MSG_SUBSCRIBE, WS_MSG_CANCEL, WS_MSG_ERROR
from errors import ForestFireError
from session_manager import SessionManager

logger = logging.getLogger(__name__)

# ============================================================================
# WEBSOCKET SERVER
# ============================================================================

class SimulationWebSocketServer:
    """
    WebSocket server for delta streaming.

    Manages:
    - Client connections
    - One session subscription per connection
    - Client-initiated cancel and disconnect handling
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 8081,
                 session_manager: Optional[SessionManager] = None):
        """
        Initialize WebSocket server.

        Args:
            host: Server host
            port: Server port
            session_manager: Shared session registry
        """
        self.host = host
        self.port = port
        self.session_manager = session_manager or SessionManager()

        # Connected clients
        self.clients: Set[ServerConnection] = set()

        logger.info(f"WebSocket server initialized: {host}:{port}")

    async def handle_client(self, websocket: ServerConnection) -> None:
        """
        Handle new client connection.

        The first message must be a subscribe; the connection then streams
        that session until it ends.

        Args:
            websocket: Client WebSocket connection
        """
        self.clients.add(websocket)
        logger.info(f"Client connected: {websocket.remote_address}")

        try:
            async for message in websocket:
                session_id = await self.handle_message(websocket, message)
                if session_id:
                    await self.stream_session(websocket, session_id)
                    break
        except websockets.exceptions.ConnectionClosed:
            logger.info(f"Client disconnected: {websocket.remote_address}")
        finally:
            self.clients.discard(websocket)

    async def handle_message(self, websocket: ServerConnection,
                             message: str) -> Optional[str]:
        """
        Handle a message received before subscription.

        Args:
            websocket: Client connection
            message: Message payload

        Returns:
            Session id to stream, or None to keep waiting
        """
        try:
            data = json.loads(message)
        except (TypeError, ValueError):
            await self.send_error(websocket, "Message must be JSON")
            return None

        msg_type = data.get("type") if isinstance(data, dict) else None

        if msg_type == WS_MSG_SUBSCRIBE:
            session_id = data.get("sessionId")
            if not session_id:
                await self.send_error(websocket, "Missing sessionId")
                return None
            return session_id

        if msg_type == WS_MSG_CANCEL and data.get("sessionId"):
            try:
                self.session_manager.cancel(data["sessionId"])
            except ForestFireError as e:
                await self.send_error(websocket, e.message)
            return None

        logger.warning(f"Unknown message type: {msg_type}")
        await self.send_error(websocket, f"Unknown message type: {msg_type}")
        return None

    async def stream_session(self, websocket: ServerConnection,
                             session_id: str) -> None:
        """
        Push a session's events to the client until it ends.

        Args:
            websocket: Client connection
            session_id: Session to attach
        """
        try:
            stream = self.session_manager.attach_stream(session_id)
        except ForestFireError as e:
            await self.send_error(websocket, e.message)
            return

        loop = asyncio.get_running_loop()
        events = stream.events()
        watcher = asyncio.create_task(self.watch_client(websocket, session_id))
        in_flight = False

        try:
            while True:
                in_flight = True
                event = await loop.run_in_executor(None, next, events, None)
                in_flight = False
                if event is None:
                    break
                await websocket.send(event.to_json())
                if event.is_end:
                    break
        except websockets.exceptions.ConnectionClosed:
            logger.info(f"Session {session_id}: client went away mid-stream")
        finally:
            watcher.cancel()
            if not in_flight:
                events.close()
            # Stops a generator still running on its executor thread
            self.cancel_quietly(session_id)

    async def watch_client(self, websocket: ServerConnection, session_id: str) -> None:
        """
        Read client messages while streaming; a cancel message or a closed
        socket cancels the session.
        """
        try:
            async for message in websocket:
                try:
                    data = json.loads(message)
                except (TypeError, ValueError):
                    continue
                if isinstance(data, dict) and data.get("type") == WS_MSG_CANCEL:
                    logger.info(f"Session {session_id}: cancel requested over websocket")
                    break
        except websockets.exceptions.ConnectionClosed:
            pass
        self.cancel_quietly(session_id)

    def cancel_quietly(self, session_id: str) -> None:
        """Cancel, treating an already-forgotten session as done."""
        try:
            self.session_manager.cancel(session_id)
        except ForestFireError:
            pass

    async def send_error(self, websocket: ServerConnection, message: str) -> None:
        """Send an error frame to the client."""
        await websocket.send(json.dumps({
            "type": WS_MSG_ERROR,
            "message": message
        }))

    async def run(self, stop: Optional[asyncio.Future] = None) -> None:
        """
        Start WebSocket server.

        Should be run in async context (e.g., with asyncio.run()).

        Args:
            stop: Future that shuts the server down when resolved;
                runs forever if None
        """
        logger.info(f"Starting WebSocket server on {self.host}:{self.port}")

        async with serve(self.handle_client, self.host, self.port):
            logger.info("WebSocket server running")
            await (stop if stop is not None else asyncio.Future())


# ============================================================================
# INTEGRATION WITH MAIN SERVER
# ============================================================================

def run_websocket_server(host: str = "0.0.0.0", port: int = 8081,
                         session_manager: Optional[SessionManager] = None) -> None:
    """
    Run WebSocket server in async context.

    Args:
        host: Server host
        port: Server port
        session_manager: Shared session registry
    """
    server = SimulationWebSocketServer(host, port, session_manager)
    asyncio.run(server.run())
