"""
Application-wide constants for the listener, HTTP endpoints, liveness sweeps, flood protection and logging.

Every value can be overridden through the environment (or a `.env` file next to the process).
"""
import os

from dotenv import find_dotenv, load_dotenv

# `.env` is searched for upward from the working directory
load_dotenv(find_dotenv(usecwd=True))

# --- Listener ---
#: Interface the relay binds to.
RELAY_HOST: str = os.getenv("RELAY_HOST", "0.0.0.0")
#: TCP port shared by the WebSocket endpoint and the health check.
PORT: int = int(os.getenv("PORT", 3000))
#: Path clients upgrade on. Any other path (except the health check) gets a 404.
WS_PATH: str = os.getenv("WS_PATH", "/ws")
#: Plain HTTP liveness endpoint for load balancers and orchestrators.
HEALTH_PATH: str = os.getenv("HEALTH_PATH", "/health")
#: Largest frame (in bytes) the transport accepts from a client.
MAX_MESSAGE_BYTES: int = int(os.getenv("MAX_MESSAGE_BYTES", 1024 * 1024))

# --- SSL Certificate Paths ---
#: Path to the server's SSL certificate file (PEM format). TLS is enabled only when both paths are set.
SSL_CERT_FILE: str = os.getenv("SSL_CERT_FILE", "")
#: Path to the server's SSL private key file (PEM format).
SSL_KEY_FILE: str = os.getenv("SSL_KEY_FILE", "")

# --- WebSocket Heartbeat Configuration ---
#: Interval (in seconds) between liveness sweeps. A peer that misses one full interval is terminated.
HEARTBEAT_INTERVAL: float = float(os.getenv("HEARTBEAT_INTERVAL", 30))

# --- Flood protection ---
#: Length of the sliding window in seconds.
RATE_LIMIT_WINDOW_SECONDS: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 5))
#: Frames a single connection may send within one window.
RATE_LIMIT_MAX_MESSAGES: int = int(os.getenv("RATE_LIMIT_MAX_MESSAGES", 200))
#: How long (in seconds) a connection's frames are dropped once it exceeds the limit.
RATE_LIMIT_BAN_SECONDS: float = float(os.getenv("RATE_LIMIT_BAN_SECONDS", 10))

# --- Logging ---
#: Root logger level.
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
#: Directory for relay.log and relay-error.log, created on startup.
LOG_DIR: str = os.getenv("LOG_DIR", "logs")

# --- Protocol ---
#: Envelope types forwarded opaquely between room members.
RELAY_TYPES = frozenset(
    {"offer", "answer", "candidate", "bye", "need-offer", "keepalive"})
#: Roles a client may announce on join. Anything else is recorded as the default.
ROLES = ("sender", "receiver")
DEFAULT_ROLE: str = "receiver"
