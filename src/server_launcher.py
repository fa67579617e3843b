"""
src/server_launcher.py

Master Launch Script for the Forest Fire Delta Stream Server

ARCHITECTURE:
1. Parse command-line arguments (--config, --host, --port, --ws-port)
2. Load YAML configuration and configure logging
3. Build the shared SessionManager
4. Start the WebSocket server on a background thread (own event loop)
5. Run the Flask REST/SSE server on the main thread (threaded)

On SIGINT/SIGTERM every live session is cancelled so open streams end
instead of hanging until their next tick.
"""

import argparse
import asyncio
import logging
import signal
import sys
import threading
from typing import Optional

from api_server import SimulationAPIServer
from config import ForestFireConfig, initialize_config, override_config
from session_manager import SessionManager
from websocket_server import SimulationWebSocketServer

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

logger = logging.getLogger(__name__)


def configure_logging(config: ForestFireConfig) -> None:
    """Configure root logging from the logging config section."""
    handlers = [logging.StreamHandler()]
    if config.logging.log_file:
        handlers.append(logging.FileHandler(config.logging.log_file))

    logging.basicConfig(
        level=getattr(logging, config.logging.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )


# ============================================================================
# SERVER LAUNCHER
# ============================================================================

class ServerLauncher:
    """
    Orchestrates:
    1. Session registry creation
    2. WebSocket server thread
    3. Flask API server
    4. Shutdown
    """

    def __init__(self, config: ForestFireConfig):
        """
        Initialize launcher.

        Args:
            config: Loaded service configuration
        """
        self.config = config
        self.session_manager = SessionManager(
            fire_defaults=config.fire_defaults,
            session_config=config.sessions,
            log_generations=config.logging.log_generations
        )
        self.api_server: Optional[SimulationAPIServer] = None
        self.ws_server: Optional[SimulationWebSocketServer] = None
        self.ws_thread: Optional[threading.Thread] = None

        logger.info(f"{config.simulation.name} v{config.simulation.version} initializing")

    def start_websocket_server(self) -> bool:
        """
        Start the WebSocket server on a daemon thread.

        Returns:
            True if the thread was started
        """
        server_cfg = self.config.server
        try:
            self.ws_server = SimulationWebSocketServer(
                host=server_cfg.websocket_host,
                port=server_cfg.websocket_port,
                session_manager=self.session_manager
            )
            self.ws_thread = threading.Thread(
                target=lambda: asyncio.run(self.ws_server.run()),
                name="websocket-server",
                daemon=True
            )
            self.ws_thread.start()
            logger.info("WebSocket server started in background thread")
            return True
        except Exception as e:
            logger.warning(f"Failed to start WebSocket server: {e}")
            return False

    def run(self) -> None:
        """Run the API server until interrupted."""
        server_cfg = self.config.server

        if server_cfg.websocket_enabled:
            self.start_websocket_server()

        self.api_server = SimulationAPIServer(
            host=server_cfg.api_host,
            port=server_cfg.api_port,
            session_manager=self.session_manager,
            base_path=server_cfg.api_base_path,
            cors_origins=server_cfg.cors_origins
        )

        try:
            self.api_server.run()
        except KeyboardInterrupt:
            logger.info("Server interrupted by user")
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Cancel all live sessions."""
        logger.info("Shutting down server...")
        self.session_manager.cancel_all()
        logger.info("Server shutdown complete")

    def signal_handler(self, signum, frame) -> None:
        """Handle SIGINT/SIGTERM."""
        logger.info(f"Received signal {signum}")
        self.shutdown()
        sys.exit(0)


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def main(argv=None):
    """Parse arguments and launch the server."""
    parser = argparse.ArgumentParser(
        description="Forest fire simulation server with live delta streaming"
    )
    parser.add_argument("--config", type=str, default=None,
                        help="Path to simulation_params.yaml")
    parser.add_argument("--host", type=str, default=None,
                        help="API server host")
    parser.add_argument("--port", type=int, default=None,
                        help="API server port")
    parser.add_argument("--ws-port", type=int, default=None,
                        help="WebSocket server port")
    parser.add_argument("--no-websocket", action="store_true",
                        help="Disable the WebSocket push channel")

    args = parser.parse_args(argv)

    # Initialize configuration
    config = initialize_config(args.config)
    if args.host is not None:
        override_config("server.api_host", args.host)
    if args.port is not None:
        override_config("server.api_port", args.port)
    if args.ws_port is not None:
        override_config("server.websocket_port", args.ws_port)
    if args.no_websocket:
        override_config("server.websocket_enabled", False)

    configure_logging(config)

    launcher = ServerLauncher(config)

    # Setup signal handlers
    signal.signal(signal.SIGINT, launcher.signal_handler)
    signal.signal(signal.SIGTERM, launcher.signal_handler)

    launcher.run()


if __name__ == "__main__":
    main()
