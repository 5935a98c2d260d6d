import json
import logging
import platform
import socket
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from logzio.handler import LogzioHandler

from cdn_server.config import DEFAULT_LOGZIO_URL

LOGGER_NAME = "cdn_server"


class StructuredMessage:
    def __init__(self, message, **kwargs):
        self.message = message
        self.kwargs = kwargs

    def __str__(self):
        if not self.kwargs:
            return '%s' % (self.message)
        fields = ' '.join(f"{key}={value}" for key, value in self.kwargs.items())
        return '%s %s' % (self.message, fields)


class StructuredLogzioFormatter(logging.Formatter):
    def __init__(self):
        super().__init__()
        self.hostname = socket.gethostname()

    def format(self, record):
        if isinstance(record.msg, StructuredMessage):
            message = record.msg.message
            extra = record.msg.kwargs
        else:
            message = record.getMessage()
            extra = {}

        log_data = {
            'message': message,
            'level': record.levelname,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'logger': record.name,
            'application': 'cdn-server',
            'hostname': self.hostname,
            'python_version': platform.python_version(),
            'function': record.funcName,
            'line_number': record.lineno,
            'filename': record.filename,
        }
        log_data.update(extra)

        return json.dumps(log_data, default=str)


def setup_logger(
    log_dir: Union[str, Path] = "logs",
    level: Union[str, int] = logging.INFO,
    logzio_token: Optional[str] = None,
    logzio_url: str = DEFAULT_LOGZIO_URL,
) -> logging.Logger:
    logs_dir = Path(log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    file_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )

    # File handler (for detailed logging)
    file_handler = logging.FileHandler(logs_dir / "cdn_server.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_formatter)

    # Console handler (for basic logging)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    if logzio_token:
        logzio_handler = LogzioHandler(
            token=logzio_token,
            url=logzio_url,
            logs_drain_timeout=5,
            network_timeout=10.0,
        )
        logzio_handler.setLevel(level)
        logzio_handler.setFormatter(StructuredLogzioFormatter())
        logger.addHandler(logzio_handler)

    return logger


# Helper function to create structured logs
def structured_log(message, **kwargs):
    return StructuredMessage(message, **kwargs)
