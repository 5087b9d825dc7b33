"""Persistent authenticated WebSocket session for the HIRO client.

The session runs one connection at a time. A receiver thread feeds
incoming messages to a ``WebSocketListener``; lost connections are
re-established by a restart thread that waits the reconnect backoff.
The bearer token travels in the sub-protocol list of the handshake as
``token-<token>``.

State transitions::

    NONE -> STARTING -> RUNNING_PRELIMINARY -> RUNNING
    RUNNING_PRELIMINARY | RUNNING -> RESTARTING -> STARTING -> ...
    any -> DONE    (close)
    any -> FAILED  (unrecoverable error)
"""

from __future__ import annotations

import json
import random
import threading
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Self

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect

from .core.backoff import next_reconnect_delay
from .core.errors import ErrorFactory
from .core.uri_builder import join_path, to_websocket_uri
from .errors import (
    AuthError,
    CancelledError,
    ConnectionError,
    DiscoveryError,
    InvalidConfigError,
    SessionStateError,
    UnknownApiError,
    WebSocketError,
)
from .telemetry import get_logger, trace_operation

if TYPE_CHECKING:
    import ssl

    import structlog

    from .config import WebSocketConfig
    from .discovery import EndpointResolver
    from .tokens import TokenProvider

CLOSE_NORMAL = 1000
CLOSE_INTERNAL_ERROR = 1011
CLOSE_SERVICE_RESTART = 1012

Message = str | bytes | Mapping[str, Any] | list[Any]
WaitFn = Callable[[threading.Event, float], bool]


class SessionState(StrEnum):
    """Lifecycle state of a WebSocket session."""

    NONE = "none"
    STARTING = "starting"
    RUNNING_PRELIMINARY = "running_preliminary"
    RUNNING = "running"
    RESTARTING = "restarting"
    DONE = "done"
    FAILED = "failed"


READY_STATES = frozenset({SessionState.RUNNING_PRELIMINARY, SessionState.RUNNING})
EXITED_STATES = frozenset({SessionState.DONE, SessionState.FAILED})


class WebSocketListener:
    """Receives session events. All callbacks default to no-ops.

    Callbacks run on the session's receiver or restart thread.
    """

    def on_open(self) -> None:
        pass

    def on_message(self, message: Any) -> None:
        pass

    def on_close(self, code: int | None, reason: str | None) -> None:
        pass

    def on_error(self, error: Exception) -> None:
        pass

    def on_state_change(self, previous: SessionState, current: SessionState) -> None:
        pass


def _wait(event: threading.Event, delay: float) -> bool:
    return event.wait(delay)


class WebSocketSession:
    """One logical WebSocket connection that survives reconnects."""

    def __init__(
        self,
        config: WebSocketConfig,
        *,
        resolver: EndpointResolver,
        token_provider: TokenProvider,
        listener: WebSocketListener | None = None,
        user_agent: str | None = None,
        ssl_context: ssl.SSLContext | None = None,
        connect_fn: Callable[..., Any] = connect,
        wait_fn: WaitFn = _wait,
        rand_fn: Callable[[int], int] = random.randrange,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self._resolver = resolver
        self._tokens = token_provider
        self._listener = listener or WebSocketListener()
        self._user_agent = user_agent
        self._ssl_context = ssl_context
        self._connect_fn = connect_fn
        self._wait = wait_fn
        self._rand = rand_fn
        self._logger = logger or get_logger().bind(component="websocket", name=config.name)

        self._state = SessionState.NONE
        self._state_lock = threading.RLock()
        self._connect_lock = threading.Lock()
        self._closed = threading.Event()
        self._connection: Any = None
        self._token: str | None = None
        self._receiver: threading.Thread | None = None
        self._restart_thread: threading.Thread | None = None
        self._reconnect_delay = 0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # State

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    @property
    def is_ready(self) -> bool:
        return self.state in READY_STATES

    def _transition(
        self,
        new: SessionState,
        *,
        allowed: frozenset[SessionState] | None = None,
    ) -> bool:
        with self._state_lock:
            previous = self._state
            if allowed is not None and previous not in allowed:
                return False
            self._state = new
        self._notify_state(previous, new)
        return True

    def _notify_state(self, previous: SessionState, current: SessionState) -> None:
        if previous == current:
            return
        self._logger.debug("State changed", previous=previous, current=current)
        self._call_listener("on_state_change", previous, current)

    def _call_listener(self, callback: str, *args: Any, propagate: bool = False) -> None:
        try:
            getattr(self._listener, callback)(*args)
        except WebSocketError:
            if propagate:
                raise
            self._logger.exception("Listener callback failed", callback=callback)
        except Exception:
            self._logger.exception("Listener callback failed", callback=callback)

    def mark_ready(self) -> None:
        """Promote ``RUNNING_PRELIMINARY`` to ``RUNNING``."""
        self._transition(
            SessionState.RUNNING,
            allowed=frozenset({SessionState.RUNNING_PRELIMINARY}),
        )

    # Connecting

    def _api_name(self) -> str:
        if not self.config.api_name:
            raise InvalidConfigError(
                "Either api_name or endpoint is required", field="api_name"
            )
        return self.config.api_name

    def handshake_uri(self) -> str:
        """WebSocket URI of the configured endpoint, query included."""
        if self.config.endpoint:
            endpoint = join_path(self._resolver.root_url, self.config.endpoint)
        else:
            endpoint = self._resolver.resolve(self._api_name())
        return to_websocket_uri(endpoint, self.config.query)

    def protocol(self) -> str:
        """Sub-protocol named by the config or the discovery entry."""
        if self.config.protocol:
            return self.config.protocol
        protocol = self._resolver.version_entry(self._api_name()).primary_protocol
        if not protocol:
            raise InvalidConfigError(
                f"No protocol for api '{self.config.api_name}'", field="protocol"
            )
        return protocol

    def connect_or_reuse(self, listener: WebSocketListener | None = None) -> Self:
        """Open the connection unless a live one exists.

        Args:
            listener: Replaces the current listener when given.

        Raises:
            ConnectionError: If the handshake fails; the session is FAILED.
            AuthError: If no token can be obtained; the session is FAILED.
            SessionStateError: If the session was closed.
        """
        if listener is not None:
            self._listener = listener

        with self._connect_lock:
            with self._state_lock:
                state = self._state
                if state == SessionState.DONE:
                    raise SessionStateError("Websocket has exited", state=state)
                if self._connection is not None and state in READY_STATES:
                    return self
                if self._restart_thread is not None and self._restart_thread.is_alive():
                    return self
                self._reconnect_delay = 0

            self._transition(SessionState.STARTING)
            try:
                self._open()
            except (AuthError, ConnectionError) as e:
                self._fail(e)
                raise
        return self

    def _open(self) -> None:
        self._detach_and_close(CLOSE_SERVICE_RESTART, "restart")

        try:
            uri = self.handshake_uri()
            protocol = self.protocol()
        except (DiscoveryError, UnknownApiError, InvalidConfigError) as e:
            raise ConnectionError("Cannot resolve webSocket endpoint", cause=e) from e

        token = self._tokens.get_token()
        kwargs: dict[str, Any] = {
            "subprotocols": [protocol, f"token-{token}"],
            "additional_headers": dict(self.config.headers),
            "open_timeout": self.config.open_timeout,
            "close_timeout": self.config.close_timeout,
        }
        if self._user_agent:
            kwargs["user_agent_header"] = self._user_agent
        if self._ssl_context is not None and uri.startswith("wss://"):
            kwargs["ssl"] = self._ssl_context

        with trace_operation("websocket.connect", attributes={"ws.uri": uri}):
            try:
                connection = self._connect_fn(uri, **kwargs)
            except (WebSocketException, OSError) as e:
                self._logger.warning("Handshake failed", uri=uri, error=str(e))
                raise ConnectionError(uri=uri, cause=e) from e

        with self._state_lock:
            if self._state in EXITED_STATES:
                stale = True
            else:
                stale = False
                previous = self._state
                self._connection = connection
                self._token = token
                self._state = SessionState.RUNNING_PRELIMINARY
                if self._restart_thread is threading.current_thread():
                    self._restart_thread = None

        if stale:
            self._close_connection(connection, CLOSE_NORMAL, "session closed")
            return

        self._logger.info("Connected", uri=uri, protocol=protocol)
        self._notify_state(previous, SessionState.RUNNING_PRELIMINARY)
        self._call_listener("on_open")

        receiver = threading.Thread(
            target=self._receive_loop,
            args=(connection,),
            name=f"{self.config.name}-receiver",
            daemon=True,
        )
        self._receiver = receiver
        receiver.start()

    def _detach_and_close(self, code: int, reason: str) -> None:
        with self._state_lock:
            connection = self._connection
            self._connection = None
        if connection is not None:
            self._close_connection(connection, code, reason)

    def _close_connection(self, connection: Any, code: int, reason: str) -> None:
        try:
            connection.close(code=code, reason=reason)
        except (WebSocketException, OSError) as e:
            self._logger.debug("Error while closing connection", error=str(e))

    # Receiving

    def _receive_loop(self, connection: Any) -> None:
        error: Exception | None = None
        try:
            for raw in connection:
                self._handle_message(raw)
                if connection is not self._connection:
                    break
        except ConnectionClosed as e:
            error = e
        except OSError as e:
            error = e
        except WebSocketError as e:
            self._call_listener("on_error", e)
            self._fail(e)
            return
        self._on_connection_lost(connection, error)

    def _handle_message(self, raw: str | bytes) -> None:
        with self._state_lock:
            self._reconnect_delay = 0

        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        try:
            message = json.loads(text)
        except ValueError:
            self._logger.debug("Ignoring message that is not JSON", size=len(text))
            return

        if isinstance(message, dict) and message.get("error"):
            self._handle_error_message(text)
            return

        # A listener raising WebSocketError ends the session.
        self._call_listener("on_message", message, propagate=True)
        self.mark_ready()

    def _handle_error_message(self, text: str) -> None:
        error_message, code = ErrorFactory.parse_error_body(text)
        state = self.state

        if code == 401 and state == SessionState.RUNNING:
            self._logger.info("Refreshing token because of error", error=error_message)
            try:
                self._tokens.refresh_token(stale_token=self._token)
            except AuthError as e:
                self._call_listener("on_error", e)
                self._fail(e)
                return
            self.schedule_restart("token refreshed")
            return

        if code == 401 and state == SessionState.RUNNING_PRELIMINARY:
            error = WebSocketError(
                f"Received error message while token was never valid: {text}",
                status_code=401,
            )
        else:
            error = WebSocketError(f"Received error message: {text}", status_code=code)
        self._call_listener("on_error", error)
        self._fail(error)

    def _on_connection_lost(self, connection: Any, error: Exception | None) -> None:
        with self._state_lock:
            if connection is not self._connection:
                return
            state = self._state

        self._call_listener(
            "on_close",
            getattr(connection, "close_code", None),
            getattr(connection, "close_reason", None),
        )
        if error is not None:
            self._call_listener("on_error", error)
        if state in READY_STATES:
            self._logger.warning("Connection lost", error=str(error) if error else None)
            self.schedule_restart("connection lost")

    # Restarting

    def schedule_restart(self, reason: str) -> bool:
        """Move to RESTARTING and reconnect on a background thread.

        Returns:
            False if the session has exited or a restart is already running.
        """
        with self._state_lock:
            if self._state in EXITED_STATES or self._closed.is_set():
                return False
            if self._restart_thread is not None and self._restart_thread.is_alive():
                return False
            previous = self._state
            self._state = SessionState.RESTARTING
            thread = threading.Thread(
                target=self._restart_loop,
                name=f"{self.config.name}-restart",
                daemon=True,
            )
            self._restart_thread = thread

        self._logger.info("Restarting session", reason=reason)
        self._notify_state(previous, SessionState.RESTARTING)
        thread.start()
        return True

    def _restart_loop(self) -> None:
        failures = 0
        try:
            while not self._closed.is_set():
                with self._state_lock:
                    delay = self._reconnect_delay
                    self._reconnect_delay = next_reconnect_delay(delay, self._rand)
                if delay > 0 and self._wait(self._closed, delay):
                    return

                if not self._transition(
                    SessionState.STARTING,
                    allowed=frozenset({SessionState.RESTARTING}),
                ):
                    return
                try:
                    self._open()
                    return
                except AuthError as e:
                    self._call_listener("on_error", e)
                    self._fail(e)
                    return
                except ConnectionError as e:
                    failures += 1
                    self._call_listener("on_error", e)
                    if failures > self.config.max_restart_attempts:
                        self._logger.error("Giving up reconnecting", attempts=failures)
                        self._fail(e)
                        return
                    self._transition(
                        SessionState.RESTARTING,
                        allowed=frozenset({SessionState.STARTING}),
                    )
        finally:
            with self._state_lock:
                if self._restart_thread is threading.current_thread():
                    self._restart_thread = None

    def _fail(self, error: Exception) -> None:
        with self._state_lock:
            if self._state == SessionState.DONE:
                return
            previous = self._state
            self._state = SessionState.FAILED
            connection = self._connection
            self._connection = None
        self._logger.error("Session failed", error=str(error))
        if connection is not None:
            self._close_connection(connection, CLOSE_INTERNAL_ERROR, "Abnormal close")
        self._notify_state(previous, SessionState.FAILED)

    # Sending

    def send(self, message: Message, *, cancel: threading.Event | None = None) -> None:
        """Send one message, blocking through the backoff ramp.

        Every attempt waits the next reconnect delay first (0, 1, 2, ...
        seconds) and then checks the state. Failed physical sends are retried
        ``max_retries`` times; after that a restart is scheduled and the call
        returns without raising.

        Args:
            message: Text, bytes, or a value serialized to JSON.
            cancel: Aborts the waits when set. Defaults to the session's
                close signal.

        Raises:
            SessionStateError: If the session is not started, has exited or
                is not ready.
            CancelledError: If ``cancel`` is set.
            WebSocketError: If retries are exhausted and restarting on
                failed sends is disabled.
        """
        payload = message if isinstance(message, (str, bytes)) else json.dumps(message)
        event = cancel if cancel is not None else self._closed
        retries = 0
        delay = 0

        while True:
            if cancel is not None and cancel.is_set():
                raise CancelledError
            if delay > 0 and self._wait(event, delay):
                if event is cancel:
                    raise CancelledError
            delay = next_reconnect_delay(delay, self._rand)

            with self._state_lock:
                state = self._state
                connection = self._connection
            if state == SessionState.NONE:
                raise SessionStateError("Websocket not started", state=state)
            if state in EXITED_STATES:
                raise SessionStateError("Websocket has exited", state=state)
            if state not in READY_STATES:
                raise SessionStateError("Websocket not ready", state=state)
            if connection is None:
                raise WebSocketError("No webSocket available.")

            try:
                connection.send(payload)
                return
            except (WebSocketException, OSError) as e:
                if retries >= self.config.max_retries:
                    if not self.config.reconnect_on_failed_send:
                        raise WebSocketError("Cannot send message because of error.") from e
                    self._logger.warning("Send failed, restarting session", error=str(e))
                    self.schedule_restart("send failed")
                    return
                retries += 1
                self._logger.warning("Retry to send message", attempt=retries, error=str(e))

    # Closing

    def close(self, reason: str = "closed by client") -> None:
        """Close the session for good; state becomes DONE."""
        self._closed.set()
        with self._state_lock:
            previous = self._state
            self._state = SessionState.DONE
            connection = self._connection
            self._connection = None

        if connection is not None:
            self._close_connection(connection, CLOSE_NORMAL, reason)
            self._call_listener("on_close", CLOSE_NORMAL, reason)
        self._notify_state(previous, SessionState.DONE)

        receiver = self._receiver
        if receiver is not None and receiver is not threading.current_thread():
            receiver.join(timeout=self.config.close_timeout)
        self._logger.info("Session closed")
