# app.py
import logging

from rendezvous_relay.services.logging_utils import setup_logging  # logging config must precede other imports
setup_logging()
logger = logging.getLogger(__name__)

import asyncio
import ssl
from http import HTTPStatus
from urllib.parse import urlsplit

from websockets import serve

from rendezvous_relay.constants import (
    HEALTH_PATH, HEARTBEAT_INTERVAL, MAX_MESSAGE_BYTES, PORT, RELAY_HOST,
    SSL_CERT_FILE, SSL_KEY_FILE, WS_PATH
)
from rendezvous_relay.handlers.connection import ConnectionHandler
from rendezvous_relay.handlers.signaling_handler import SignalingHandler
from rendezvous_relay.services.liveness import LivenessSupervisor
from rendezvous_relay.services.registry import RoomRegistry


def route_request(connection, request):
    """
    Filter HTTP requests before the WebSocket handshake.

    Answers the health check directly and refuses any path other than the
    signaling endpoint. Returning None lets the handshake proceed.

    Parameters:
        connection (websockets.asyncio.server.ServerConnection): Connection being opened.
        request (websockets.http11.Request): The parsed HTTP request.

    Returns:
        websockets.http11.Response or None
    """
    path = urlsplit(request.path).path
    if path == HEALTH_PATH:
        return connection.respond(HTTPStatus.OK, "ok\n")
    if path != WS_PATH:
        return connection.respond(HTTPStatus.NOT_FOUND, "not found\n")
    return None


def log_unhandled(loop, context):
    """
    Event-loop exception handler: log asynchronous faults nobody awaited.
    """
    exc = context.get("exception")
    logger.error(f"Unhandled error: {context.get('message')}", exc_info=exc)


def build_ssl_context(certfile=SSL_CERT_FILE, keyfile=SSL_KEY_FILE):
    """
    Create a server TLS context when both certificate paths are configured.

    Returns:
        ssl.SSLContext or None: None means serve plain ws://.
    """
    if not (certfile and keyfile):
        return None
    ssl_ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    ssl_ctx.load_cert_chain(certfile=certfile, keyfile=keyfile)
    return ssl_ctx


def main():
    """
    Entry point for starting the relay.

    Reads host, port and TLS settings from `constants` and runs the
    asynchronous server until interrupted.
    """
    logger.info("Starting rendezvous relay...")
    try:
        asyncio.run(start_server(RELAY_HOST, PORT, build_ssl_context()))
    except KeyboardInterrupt:
        logger.info("Relay stopped")


async def start_server(host, port, ssl_ctx=None):
    """
    Serve the signaling endpoint and run the liveness supervisor.

    Parameters:
        host (str): The host IP address or hostname to bind the server.
        port (int): The port number to listen on.
        ssl_ctx (ssl.SSLContext, optional): TLS context; None for plain ws://.

    Returns:
        None
    """
    asyncio.get_running_loop().set_exception_handler(log_unhandled)

    registry = RoomRegistry()
    connections = ConnectionHandler(registry, SignalingHandler(registry))
    supervisor = LivenessSupervisor(registry, HEARTBEAT_INTERVAL)

    async with serve(
            connections.handle_connection,
            host=host,
            port=port,
            ssl=ssl_ctx,
            process_request=route_request,
            ping_interval=None,  # liveness is swept by LivenessSupervisor
            max_size=MAX_MESSAGE_BYTES,
    ):
        scheme = "wss" if ssl_ctx else "ws"
        logger.info(f"Relay listening on {scheme}://{host}:{port}{WS_PATH} (health: {HEALTH_PATH})")
        supervisor.start()
        try:
            await asyncio.Future()  # Run forever
        finally:
            await supervisor.stop()


if __name__ == "__main__":
    main()
