from __future__ import annotations

import asyncio
import ssl
from typing import AsyncIterator, Optional

from mumble_client.config import TLSOptions
from mumble_shared.errors import ConnectionError
from mumble_shared.log import get_logger

logger = get_logger(__name__)

READ_SIZE = 64 * 1024


class SecureStream:
    """
    Bidirectional encrypted byte stream to the server.

    A TLS connection over TCP; reads yield whatever bytes arrived, with no
    relation to frame boundaries. Owned by exactly one session.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, peer: str) -> None:
        self.reader = reader
        self.writer = writer
        self.peer = peer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, data: bytes) -> None:
        if self._closed or self.writer.is_closing():
            raise ConnectionError(f"stream to {self.peer} is closed")
        try:
            self.writer.write(data)
            await self.writer.drain()
        except OSError as e:
            self._closed = True
            raise ConnectionError(f"connection to {self.peer} lost while sending", cause=e)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            while True:
                try:
                    chunk = await self.reader.read(READ_SIZE)
                except OSError as e:
                    raise ConnectionError(f"connection to {self.peer} dropped: {e}", cause=e)
                if not chunk:
                    logger.info("Connection to %s closed", self.peer)
                    return
                yield chunk
        finally:
            self._closed = True

    async def close(self) -> None:
        self._closed = True
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except Exception as e:
            logger.debug(f"Error closing connection to {self.peer}: {e}")


async def open_secure_stream(host: str, port: int, tls_options: Optional[TLSOptions] = None) -> SecureStream:
    """Open the encrypted stream; any failure surfaces as ConnectionError."""
    tls_options = tls_options or TLSOptions()
    peer = f"[{host}]:{port}" if ":" in host else f"{host}:{port}"
    try:
        ssl_context = tls_options.build_ssl_context()
        reader, writer = await asyncio.open_connection(
            host,
            port,
            ssl=ssl_context,
            server_hostname=tls_options.server_hostname or host,
        )
    except (OSError, ssl.SSLError) as e:
        raise ConnectionError(f"failed to connect to {peer}: {e}", cause=e)
    logger.info(f"Connected to {peer}")
    return SecureStream(reader, writer, peer)
