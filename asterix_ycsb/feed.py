from __future__ import annotations

import logging
import socket
from typing import Optional

from .connector import is_valid_service_url
from .exceptions import ConfigurationError, FeedError
from .logging_utils import get_logger, log_json

logger = get_logger(__name__)


class SocketFeed:
    """Keep-alive TCP connection to a socket feed adapter.

    Records are written as ADM/JSON object literals back to back, the format
    the feed's parser expects.
    """

    def __init__(self, host: str, port: int, timeout: Optional[float] = None):
        if port < 0 or port > 65535:
            raise ConfigurationError(f"Invalid port {port}.")
        if not is_valid_service_url(f"http://{host}:{port}/", ("http",)):
            raise ConfigurationError(f'Invalid hostname "{host}" or invalid port {port}')
        self.host = host
        self.port = port
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None
        self.connect()

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        self.close()
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except socket.gaierror as ex:
            raise ConfigurationError(f"Invalid feed configuration {ex}") from ex
        except OSError as ex:
            raise FeedError(f"Error creating SocketFeed {ex}") from ex
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        self._sock = sock
        log_json(logger, logging.DEBUG, "feed_connected", host=self.host, port=self.port)

    def write(self, record: str) -> bool:
        """Send one record literal. False if the socket is closed or broken."""
        if self._sock is None:
            return False
        try:
            self._sock.sendall(record.encode("utf-8"))
        except OSError as ex:
            log_json(logger, logging.WARNING, "feed_write_failed", host=self.host, port=self.port, error=str(ex))
            return False
        return True

    def close(self) -> None:
        sock = self._sock
        self._sock = None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_WR)
        except OSError:
            # Peer already gone; nothing left to flush.
            pass
        sock.close()
