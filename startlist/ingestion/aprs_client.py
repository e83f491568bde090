"""
APRS-IS client for the Open Glider Network.

Handles communication with an OGN APRS server:
- Login with a range filter around the airfield
- Keepalive comments so the server does not drop an idle connection
- Line-by-line reading of the beacon stream
- Replay of a captured stream from a file (one APRS line per line)
"""

import logging
import socket
import threading
from typing import Iterator, Optional

from startlist import __version__
from startlist.config import AprsConfig

logger = logging.getLogger(__name__)


class AprsClient:
    """
    Client for an APRS-IS server.

    Handles:
    - TCP connection and login line
    - Server-side filter r/lat/lon/radius
    - Keepalive thread
    - Reading newline-delimited lines
    """

    def __init__(
        self,
        host: str = 'aprs.glidernet.org',
        port: int = 14580,
        user: str = 'startlist',
        latitude: float = 0.0,
        longitude: float = 0.0,
        radius_km: float = 20.0,
        keepalive_seconds: int = 30,
        timeout: float = 60.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.latitude = latitude
        self.longitude = longitude
        self.radius_km = radius_km
        self.keepalive_seconds = keepalive_seconds
        self.timeout = timeout

        self._sock: Optional[socket.socket] = None
        self._send_lock = threading.Lock()
        self._keepalive_stop = threading.Event()
        self._keepalive_thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, aprs: AprsConfig, latitude: float, longitude: float) -> 'AprsClient':
        """Create client from application configuration."""
        return cls(
            host=aprs.host,
            port=aprs.port,
            user=aprs.user,
            latitude=latitude,
            longitude=longitude,
            radius_km=aprs.radius_km,
            keepalive_seconds=aprs.keepalive_seconds,
        )

    @property
    def login_line(self) -> str:
        # Passcode -1: receive-only login
        return (
            f'user {self.user} pass -1 vers startlist {__version__} '
            f'filter r/{self.latitude:.4f}/{self.longitude:.4f}/{self.radius_km:g}\n'
        )

    def connect(self) -> None:
        """Open the connection, log in and start the keepalive thread."""
        logger.info(f'Connecting to {self.host}:{self.port}')
        self._sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        self._send(self.login_line)
        logger.info(f'Logged in as {self.user} (radius {self.radius_km:g}km)')

        self._keepalive_stop.clear()
        self._keepalive_thread = threading.Thread(
            target=self._keepalive_loop,
            name='aprs-keepalive',
            daemon=True,
        )
        self._keepalive_thread.start()

    def _send(self, text: str) -> None:
        with self._send_lock:
            if self._sock is None:
                raise ConnectionError('not connected')
            self._sock.sendall(text.encode('ascii', errors='replace'))

    def _keepalive_loop(self) -> None:
        while not self._keepalive_stop.wait(self.keepalive_seconds):
            try:
                self._send('# startlist keepalive\n')
            except OSError as e:
                logger.warning(f'Keepalive failed: {e}')
                return

    def lines(self) -> Iterator[str]:
        """
        Yield lines from the server until the connection closes.

        Raises:
            ConnectionError if not connected
            OSError on socket errors
        """
        if self._sock is None:
            raise ConnectionError('not connected')

        buffer = ''
        while True:
            data = self._sock.recv(4096)
            if not data:
                logger.warning('Connection closed by server')
                return
            buffer += data.decode('utf-8', errors='ignore')
            while '\n' in buffer:
                line, buffer = buffer.split('\n', 1)
                line = line.rstrip('\r')
                if line:
                    yield line

    def close(self) -> None:
        self._keepalive_stop.set()
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None
        logger.info('APRS connection closed')


class ReplayClient:
    """Reads a captured APRS stream from a file with the AprsClient interface."""

    def __init__(self, path: str):
        self.path = path

    def connect(self) -> None:
        logger.info(f'Reading from {self.path}')

    def lines(self) -> Iterator[str]:
        with open(self.path, 'r', encoding='utf-8', errors='ignore') as f:
            for line in f:
                line = line.rstrip('\r\n')
                if line:
                    yield line

    def close(self) -> None:
        pass
