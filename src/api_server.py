"""
src/api_server.py

REST API Server for the Forest Fire Delta Stream

Provides HTTP endpoints for:
- Session creation from a sparse field
- Server-Sent Events stream of generation deltas
- Session cancellation
- Health check
"""

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
import logging
from typing import Optional
from datetime import datetime, timezone

from constants import API_BASE_PATH, FOREST_FIRE_ROUTE, SERVICE_VERSION
from delta_stream import encode_sse
from errors import ForestFireError, InvalidInput
from session_manager import SessionManager

logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

class SimulationAPIServer:
    """
    REST API server for simulation sessions.

    Endpoints:
    - GET    /api/health
    - POST   /api/forest-fire                    create session
    - GET    /api/forest-fire?sessionId=...      SSE delta stream
    - DELETE /api/forest-fire?sessionId=...      cancel session
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 8080,
                 session_manager: Optional[SessionManager] = None,
                 base_path: str = API_BASE_PATH,
                 cors_origins: str = "*"):
        """
        Initialize API server.

        Args:
            host: Server host
            port: Server port
            session_manager: Shared session registry
            base_path: URL prefix for all routes
            cors_origins: Allowed CORS origins
        """
        self.host = host
        self.port = port
        self.session_manager = session_manager or SessionManager()
        self.base_path = base_path.rstrip('/')

        self.app = Flask(__name__)
        CORS(self.app, origins=cors_origins)

        # Register routes
        self._register_routes()

        logger.info(f"API server initialized: {host}:{port}{self.base_path}")

    def _register_routes(self) -> None:
        """Register all API endpoints."""
        fire_route = self.base_path + FOREST_FIRE_ROUTE

        @self.app.route(self.base_path + '/health', methods=['GET'])
        def health():
            """Health check."""
            return jsonify({
                "status": "healthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "version": SERVICE_VERSION,
                "active_sessions": self.session_manager.active_count()
            }), 200

        @self.app.route(fire_route, methods=['POST'])
        def create_session():
            """Create a simulation session from a sparse field."""
            try:
                data = request.get_json(silent=True)
                if not isinstance(data, dict):
                    raise InvalidInput("Request body must be a JSON object")

                session_id = self.session_manager.create(
                    data.get("field"), data.get("params"), data.get("coords"))
                return jsonify({"sessionId": session_id}), 200
            except ForestFireError as e:
                logger.warning(f"Session creation rejected: {e.message}")
                return jsonify(e.to_dict()), e.status_code
            except Exception as e:
                logger.error(f"Error creating session: {e}", exc_info=True)
                return jsonify({"error": "Failed to create session"}), 500

        @self.app.route(fire_route, methods=['GET'])
        def stream_session():
            """Stream generation deltas as Server-Sent Events."""
            session_id = request.args.get("sessionId")
            if not session_id:
                return jsonify({"error": "Missing sessionId"}), 400

            try:
                stream = self.session_manager.attach_stream(session_id)
            except ForestFireError as e:
                return jsonify(e.to_dict()), e.status_code

            response = Response(
                encode_sse(stream),
                mimetype='text/event-stream',
                headers={
                    'Cache-Control': 'no-cache',
                    'X-Accel-Buffering': 'no',
                }
            )
            # Bodies closed unread (HEAD, early disconnect) never start the stream
            response.call_on_close(stream.close)
            return response

        @self.app.route(fire_route, methods=['DELETE'])
        def cancel_session():
            """Cancel a session (idempotent)."""
            session_id = request.args.get("sessionId")
            if not session_id:
                return jsonify({"error": "Missing sessionId"}), 400

            try:
                cancelled = self.session_manager.cancel(session_id)
                return jsonify({"success": True, "cancelled": cancelled}), 200
            except ForestFireError as e:
                return jsonify(e.to_dict()), e.status_code
            except Exception as e:
                logger.error(f"Error cancelling session {session_id}: {e}", exc_info=True)
                return jsonify({"error": str(e)}), 500

    def run(self, debug: bool = False) -> None:
        """
        Start API server.

        Args:
            debug: Enable Flask debug mode
        """
        logger.info(f"Starting API server on {self.host}:{self.port}")
        self.app.run(host=self.host, port=self.port, debug=debug, threaded=True)

    def get_app(self):
        """Get Flask app (for testing/deployment)."""
        return self.app
