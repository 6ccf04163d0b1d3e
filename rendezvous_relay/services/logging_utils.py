# services/logging_utils.py
import logging
import logging.config
import re
from pathlib import Path

from rendezvous_relay.constants import LOG_DIR, LOG_LEVEL

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%d-%m-%Y %H:%M:%S"


class RedactingFilter(logging.Filter):
    """
    Masks ICE and TURN credentials that relayed SDP or config payloads may carry.

    The message is rendered once, scrubbed, and stored back on the record
    with its arguments dropped, so every handler sees the same masked text.
    """

    SECRETS = [
        re.compile(r'(a=ice-pwd:)[^\s\\"]+'),
        re.compile(r'(a=ice-ufrag:)[^\s\\"]+'),
        re.compile(r'(["\'](?:credential|password)["\']\s*:\s*["\'])[^"\']*'),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        text = record.getMessage()
        for secret in self.SECRETS:
            text = secret.sub(r"\1***", text)
        record.msg, record.args = text, ()
        return True


def _handler(cls: str, level: str, **options) -> dict:
    return {"class": cls, "formatter": "default", "filters": ["redact"],
            "level": level, **options}


def setup_logging(level: str = None, logs_dir: str = None, log_file: str = "relay.log") -> None:
    """
    Send relay logs to the console, a daily-rotated `log_file` and a size-capped error log.

    Args:
        level (str, optional): Root level. Defaults to `constants.LOG_LEVEL`.
        logs_dir (str, optional): Where the log files go, created if missing.
            Defaults to `constants.LOG_DIR`.
        log_file (str, optional): Name of the main log file inside `logs_dir`.
    """
    level = (level or LOG_LEVEL).upper()
    logs = Path(logs_dir or LOG_DIR)
    logs.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"redact": {"()": RedactingFilter}},
        "formatters": {"default": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT}},
        "handlers": {
            "console": _handler("logging.StreamHandler", level),
            "file": _handler("logging.handlers.TimedRotatingFileHandler", level,
                             filename=str(logs / log_file), when="midnight",
                             backupCount=14, encoding="utf-8"),
            "errors": _handler("logging.handlers.RotatingFileHandler", "ERROR",
                               filename=str(logs / "relay-error.log"),
                               maxBytes=10 * 1024 * 1024, backupCount=5,
                               encoding="utf-8"),
        },
        # handshake noise from health checks and port scanners
        "loggers": {"websockets.server": {"level": "WARNING"}},
        "root": {"level": level, "handlers": ["console", "file", "errors"]},
    })
