"""
Kiosk / dashboard side connection to the visit hub.

`HubClient` keeps one WebSocket open to the hub and reconnects on its own
when the connection drops. Broadcast signals are exposed as an async
iterator; replies to this client's own check-ins (and the Connected
handshake) arrive on a separate queue.

    async with HubClient("ws://localhost:8000/visithub", role="kiosk") as hub:
        await hub.wait_connected()
        await hub.check_in("Ada", "Acme", CheckInMode.SELF_CHECK_IN)
        async for _ in hub.broadcasts():
            refresh()
"""

import asyncio
import contextlib
import enum
import json
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Sequence

import websockets
from websockets.exceptions import InvalidURI, WebSocketException

from .schemas import CheckInMode, CommunicationEvent

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAYS = (0.0, 2.0, 10.0, 30.0)


# PUBLIC_INTERFACE
class ConnectionState(str, enum.Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"


# PUBLIC_INTERFACE
class NotConnectedError(RuntimeError):
    """Raised by send() while the client has no open connection."""


# PUBLIC_INTERFACE
class HubClient:
    def __init__(
        self,
        url: str,
        *,
        role: str = "kiosk",
        session_id: Optional[str] = None,
        reconnect_delays: Sequence[float] = DEFAULT_RECONNECT_DELAYS,
        send_timeout: float = 5.0,
        open_timeout: float = 10.0,
    ) -> None:
        if not reconnect_delays:
            raise ValueError("reconnect_delays must not be empty")
        self.url = url
        self.role = role
        self.session_id = session_id or uuid.uuid4().hex
        self.reconnect_delays = tuple(reconnect_delays)
        self.send_timeout = send_timeout
        self.open_timeout = open_timeout

        self.state = ConnectionState.DISCONNECTED
        self.connection_id: Optional[str] = None
        self._websocket = None
        self._runner: Optional[asyncio.Task] = None
        self._connected = asyncio.Event()
        self._broadcasts: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._replies: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    # -------------------- lifecycle --------------------

    async def connect(self) -> None:
        """Starts the background connection loop. Returns immediately."""
        if self._runner is not None and not self._runner.done():
            return
        self.state = ConnectionState.CONNECTING
        self._runner = asyncio.create_task(self._run())

    async def wait_connected(self, timeout: Optional[float] = None) -> None:
        """
        Waits until the client is connected.

        Raises:
            asyncio.TimeoutError: not connected within `timeout`.
            NotConnectedError: connect() was not called, or the connection loop was stopped.
            InvalidURI: the connection loop gave up on an unusable address.
        """
        runner = self._runner
        if runner is None:
            raise NotConnectedError(f"connect() was not called for {self.url}")
        waiter = asyncio.ensure_future(self._connected.wait())
        try:
            done, _ = await asyncio.wait({waiter, runner}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if waiter in done:
            return
        if runner in done:
            if not runner.cancelled():
                runner.result()
            raise NotConnectedError(f"connection loop for {self.url} has stopped")
        raise asyncio.TimeoutError()

    async def disconnect(self) -> None:
        """Stops reconnecting and closes the connection. Safe to call more than once."""
        runner, self._runner = self._runner, None
        if runner is not None:
            if not runner.done():
                runner.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await runner
            elif not runner.cancelled() and runner.exception() is not None:
                logger.debug("Connection loop for %s had stopped: %r", self.url, runner.exception())
        websocket, self._websocket = self._websocket, None
        if websocket is not None:
            with contextlib.suppress(Exception):
                await websocket.close()
        self._set_disconnected(ConnectionState.DISCONNECTED)

    async def __aenter__(self) -> "HubClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    # -------------------- outbound --------------------

    async def send(self, event: CommunicationEvent, corr_id: Optional[str] = None) -> None:
        """
        Sends a check-in event to the hub.

        Raises:
            NotConnectedError: the client is not connected right now.
            asyncio.TimeoutError: the frame could not be written within send_timeout.
        """
        frame: Dict[str, Any] = {"type": "VisitorCheckIn", "payload": event.encode()}
        if corr_id is not None:
            frame["corr_id"] = corr_id
        await self._send_frame(frame)

    async def check_in(
        self,
        name: str,
        company: Optional[str],
        mode: CheckInMode,
        visitor_id: Optional[uuid.UUID] = None,
    ) -> str:
        """Sends a check-in and returns the correlation id its reply will carry."""
        corr_id = uuid.uuid4().hex
        event = CommunicationEvent(id=visitor_id, name=name, company=company, mode=mode)
        await self.send(event, corr_id=corr_id)
        return corr_id

    async def _send_frame(self, frame: Dict[str, Any]) -> None:
        websocket = self._websocket
        if self.state != ConnectionState.CONNECTED or websocket is None:
            raise NotConnectedError(f"not connected to {self.url} (state: {self.state.value})")
        await asyncio.wait_for(websocket.send(json.dumps(frame)), self.send_timeout)

    # -------------------- inbound --------------------

    async def broadcasts(self) -> AsyncIterator[Dict[str, Any]]:
        while True:
            yield await self._broadcasts.get()

    async def next_broadcast(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return await asyncio.wait_for(self._broadcasts.get(), timeout)

    async def next_reply(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return await asyncio.wait_for(self._replies.get(), timeout)

    def _dispatch(self, raw) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring non-JSON frame from hub: %r", raw)
            return
        if not isinstance(message, dict):
            return
        if message.get("type") == "Broadcast":
            self._broadcasts.put_nowait(message)
            return
        if message.get("type") == "Connected":
            self.connection_id = message.get("connection_id")
        self._replies.put_nowait(message)

    # -------------------- connection loop --------------------

    def _set_disconnected(self, state: ConnectionState) -> None:
        self.state = state
        self._connected.clear()

    async def _run(self) -> None:
        attempt = 0
        while True:
            self.state = ConnectionState.CONNECTING
            try:
                async with websockets.connect(self.url, open_timeout=self.open_timeout) as websocket:
                    self._websocket = websocket
                    self.state = ConnectionState.CONNECTED
                    attempt = 0
                    logger.info("Connected to hub %s", self.url)
                    await self._send_frame({"type": "Hello", "message": f"{self.role};{self.session_id};"})
                    self._connected.set()
                    async for raw in websocket:
                        self._dispatch(raw)
                logger.info("Hub %s closed the connection", self.url)
            except InvalidURI:
                logger.error("Invalid hub address: %r", self.url)
                self._set_disconnected(ConnectionState.DISCONNECTED)
                raise
            except (WebSocketException, OSError, asyncio.TimeoutError) as ex:
                logger.warning("Connection to hub %s lost: %r", self.url, ex)
            finally:
                self._websocket = None
                self._connected.clear()

            delay = self.reconnect_delays[min(attempt, len(self.reconnect_delays) - 1)]
            attempt += 1
            self.state = ConnectionState.CONNECTING
            logger.info("Reconnecting to %s in %.1fs", self.url, delay)
            await asyncio.sleep(delay)
