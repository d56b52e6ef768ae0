"""
Coordination hub: the WebSocket endpoint kiosks and dashboards connect to.

Frames are JSON text messages with a "type":

client -> hub
    {"type": "Hello", "message": "kiosk;<session>;"}
    {"type": "VisitorCheckIn", "payload": <CommunicationEvent>, "corr_id": "..."}

hub -> client
    {"type": "Connected", "connection_id": "..."}          reply to Hello
    {"type": "CheckInAccepted", "id": "...", "status": "..."}  sender only
    {"type": "Error", "kind": "...", "code": "...", ...}    sender only
    {"type": "Broadcast", "message": ""}                    everybody

The hub keeps no visitor state. After a successful command it fires the
visitor-updated notifier; its own subscription turns that into a Broadcast
frame on every connection. Broadcast carries no data, clients re-query.
"""

import asyncio
import contextlib
import json
import logging
import uuid
from typing import Any, Callable, Dict, Optional, Set

from starlette.websockets import WebSocket, WebSocketState

from .commands import check_in_visitor, mark_visitor_arrived
from .errors import Error, Result
from .notifier import VisitorUpdateNotifier
from .schemas import CheckInMode, CommunicationEvent

logger = logging.getLogger(__name__)

BROADCAST = {"type": "Broadcast", "message": ""}


# PUBLIC_INTERFACE
async def run_command(
    session_factory,
    handler: Callable[..., Result],
    *,
    timeout: float,
    on_late_success: Optional[Callable[[], None]] = None,
    **kwargs,
) -> Result:
    """
    Runs a synchronous command handler in a worker thread with its own session.

    The caller stops waiting after `timeout` seconds and gets a Timeout error.
    The handler commits at most once, so an abandoned command leaves the
    visitor either untouched or fully transitioned. If it still succeeds after
    the caller gave up, `on_late_success` is called on the event loop.
    """
    def call() -> Result:
        db = session_factory()
        try:
            return handler(db, **kwargs)
        finally:
            db.close()

    name = getattr(handler, "__name__", handler)

    def finished_late(future: asyncio.Future) -> None:
        if future.cancelled():
            return
        if future.exception() is not None:
            logger.error("%s failed after timing out: %r", name, future.exception())
            return
        if not future.result().is_error:
            logger.info("%s completed after timing out", name)
            if on_late_success is not None:
                on_late_success()

    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, call)
    try:
        return await asyncio.wait_for(asyncio.shield(future), timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.1fs", name, timeout)
        future.add_done_callback(finished_late)
        return Result.fail(Error.timeout("HUB.COMMAND.TIMEOUT"))


# PUBLIC_INTERFACE
class ClientConnection:
    """One connected kiosk or dashboard with its own outgoing queue."""

    def __init__(self, websocket: WebSocket, connection_id: str, send_timeout: float):
        self.websocket = websocket
        self.connection_id = connection_id
        self.send_timeout = send_timeout
        self.role: Optional[str] = None
        self.closed = False
        self.outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self.tasks: Set[asyncio.Task] = set()
        self._pump: Optional[asyncio.Task] = None

    def post(self, message: Dict[str, Any]) -> None:
        """Queues a frame for this client without waiting for delivery."""
        if not self.closed:
            self.outbox.put_nowait(message)

    def start(self, on_failure: Callable[["ClientConnection"], None]) -> None:
        self._pump = asyncio.create_task(self.pump(on_failure))

    async def stop(self) -> None:
        pump, self._pump = self._pump, None
        if pump is not None and not pump.done():
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump

    async def pump(self, on_failure: Callable[["ClientConnection"], None]) -> None:
        while True:
            message = await self.outbox.get()
            try:
                await asyncio.wait_for(
                    self.websocket.send_text(json.dumps(message)), self.send_timeout
                )
            except asyncio.CancelledError:
                raise
            except Exception as ex:
                logger.info("Dropping connection %s, send failed: %r", self.connection_id, ex)
                on_failure(self)
                await self.close_socket()
                return

    async def close_socket(self) -> None:
        """Closes the socket so the peer notices and reconnects."""
        try:
            await asyncio.wait_for(self.websocket.close(code=1011), self.send_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            logger.debug("Closing connection %s failed: %r", self.connection_id, ex)


# PUBLIC_INTERFACE
class VisitHub:
    """Router from check-in events to command handlers, and fan-out of refresh signals."""

    def __init__(
        self,
        session_factory,
        notifier: VisitorUpdateNotifier,
        *,
        command_timeout: float = 10.0,
        send_timeout: float = 5.0,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.command_timeout = command_timeout
        self.send_timeout = send_timeout
        self._clients: Dict[str, ClientConnection] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscription = notifier.subscribe(self.broadcast)

    @property
    def connections(self):
        return list(self._clients.values())

    # -------------------- connection lifecycle --------------------

    async def connect(self, websocket: WebSocket) -> ClientConnection:
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        connection = ClientConnection(websocket, uuid.uuid4().hex, self.send_timeout)
        self._clients[connection.connection_id] = connection
        connection.start(self._drop)
        logger.info("Client %s connected (%d connected)", connection.connection_id, len(self._clients))
        return connection

    def _drop(self, connection: ClientConnection) -> None:
        connection.closed = True
        if self._clients.pop(connection.connection_id, None) is not None:
            logger.info("Client %s disconnected (%d connected)", connection.connection_id, len(self._clients))

    async def disconnect(self, connection: ClientConnection) -> None:
        self._drop(connection)
        await connection.stop()
        if connection.websocket.application_state != WebSocketState.DISCONNECTED:
            with contextlib.suppress(Exception):
                await connection.websocket.close()

    def close(self) -> None:
        self.notifier.unsubscribe(self._subscription)

    # -------------------- fan-out --------------------

    def broadcast(self) -> None:
        """Queues a Broadcast frame on every connection. Safe to call from any thread."""
        loop = self._loop
        if loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._post_all(BROADCAST)
        elif not loop.is_closed():
            loop.call_soon_threadsafe(self._post_all, BROADCAST)

    def _post_all(self, message: Dict[str, Any]) -> None:
        for connection in list(self._clients.values()):
            connection.post(dict(message))

    # -------------------- inbound --------------------

    async def serve(self, websocket: WebSocket) -> None:
        """Runs one client connection until it goes away."""
        connection = await self.connect(websocket)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                if connection.closed:
                    break
                raw = message.get("text")
                if raw is None and message.get("bytes") is not None:
                    raw = message["bytes"].decode("utf-8", errors="replace")
                self.handle_frame(connection, raw)
        finally:
            await self.disconnect(connection)

    def handle_frame(self, connection: ClientConnection, raw: Optional[str]) -> None:
        try:
            frame = json.loads(raw or "")
        except ValueError:
            frame = None
        if not isinstance(frame, dict):
            connection.post(Error.invalid_payload("Frames must be JSON objects.").to_message())
            return

        corr_id = frame.get("corr_id") if isinstance(frame.get("corr_id"), str) else None
        frame_type = frame.get("type")

        if frame_type == "Hello":
            text = str(frame.get("message", ""))
            connection.role = text.split(";", 1)[0] or None
            logger.info("Hello from %s: %s", connection.connection_id, text)
            connection.post({"type": "Connected", "connection_id": connection.connection_id})
            return

        if frame_type == "VisitorCheckIn":
            task = asyncio.create_task(self._check_in(connection, frame.get("payload"), corr_id))
            connection.tasks.add(task)
            task.add_done_callback(connection.tasks.discard)
            return

        connection.post(
            Error.invalid_payload(f"Unknown frame type {frame_type!r}.").to_message(corr_id=corr_id)
        )

    async def _check_in(self, connection: ClientConnection, payload: Any, corr_id: Optional[str]) -> None:
        result = await self.on_check_in(payload)
        if result.is_error:
            logger.warning(
                "Check-in from %s rejected: %s", connection.connection_id, "; ".join(result.messages)
            )
            connection.post(result.to_error_message(corr_id=corr_id))
            return

        visitor = result.value
        ack = {"type": "CheckInAccepted", "id": str(visitor.id), "status": visitor.status.value}
        if corr_id is not None:
            ack["corr_id"] = corr_id
        connection.post(ack)
        logger.info("Visitor %s checked in via %s", visitor.id, connection.connection_id)
        self.notifier.notify()

    async def on_check_in(self, payload: Any) -> Result:
        """
        Decodes a check-in event and runs the matching command.

        SELF_CHECK_IN goes to the kiosk check-in, REMOTE_CHECK_IN to mark-arrived.
        Anything that cannot be decoded, or carries another mode, is an
        InvalidPayload and touches nothing.
        """
        try:
            event = CommunicationEvent.decode(payload)
        except ValueError as ex:
            logger.warning("Malformed check-in payload: %s", ex)
            return Result.fail(Error.invalid_payload("The check-in payload could not be decoded."))

        if event.mode == CheckInMode.SELF_CHECK_IN:
            logger.info("Visitor check-in received: %s, %s", event.name, event.company)
            return await self.execute(
                check_in_visitor, name=event.name, company=event.company, planned_visitor_id=event.id
            )
        if event.mode == CheckInMode.REMOTE_CHECK_IN:
            return await self.execute(mark_visitor_arrived, visitor_id=event.id)

        return Result.fail(Error.invalid_payload(f"Unsupported check-in mode {event.mode.value}."))

    async def execute(self, handler: Callable[..., Result], **kwargs) -> Result:
        return await run_command(
            self.session_factory,
            handler,
            timeout=self.command_timeout,
            on_late_success=self.notifier.notify,
            **kwargs,
        )
