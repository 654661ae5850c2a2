"""Peer messaging: a WebSocket server that broadcasts grants and a client that applies them."""

from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass, field
from typing import Any, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from sharekaro.chrome import (
    CdpError,
    Cookie,
    import_and_open_with_cookies_from_memory,
    revoke_cookies,
)

_CHANNEL_CAPACITY = 16
_map_lock = threading.Lock()


class MessageError(ValueError):
    """Raised when a peer message cannot be decoded."""


def _require_str(data: dict, key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise MessageError(f"{what}: field {key!r} must be a string")
    return value


def _require_list(data: dict, key: str, what: str) -> list:
    value = data.get(key)
    if not isinstance(value, list):
        raise MessageError(f"{what}: field {key!r} must be an array")
    return value


@dataclass(frozen=True)
class RevokeCookie:
    """Identifies one cookie to delete."""

    name: str
    domain: str
    path: str

    @classmethod
    def from_dict(cls, data: Any) -> RevokeCookie:
        if not isinstance(data, dict):
            raise MessageError("revoke cookie must be an object")
        return cls(
            name=_require_str(data, "name", "revoke cookie"),
            domain=_require_str(data, "domain", "revoke cookie"),
            path=_require_str(data, "path", "revoke cookie"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "domain": self.domain, "path": self.path}


@dataclass
class GrantMessage:
    """Shares a tab's URL and cookies with peers."""

    tab_id: str
    url: str
    cookies: list[Cookie] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> GrantMessage:
        if not isinstance(data, dict):
            raise MessageError("grant must be an object")
        try:
            cookies = [Cookie.from_dict(c) for c in _require_list(data, "cookies", "grant")]
        except CdpError as exc:
            raise MessageError(str(exc)) from exc
        return cls(
            tab_id=_require_str(data, "tab_id", "grant"),
            url=_require_str(data, "url", "grant"),
            cookies=cookies,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tab_id": self.tab_id,
            "url": self.url,
            "cookies": [c.to_dict() for c in self.cookies],
        }


@dataclass
class RevokeMessage:
    """Withdraws previously shared cookies from peers."""

    tab_id: str
    cookies: list[RevokeCookie] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> RevokeMessage:
        if not isinstance(data, dict):
            raise MessageError("revoke must be an object")
        return cls(
            tab_id=_require_str(data, "tab_id", "revoke"),
            cookies=[RevokeCookie.from_dict(c) for c in _require_list(data, "cookies", "revoke")],
        )

    def to_dict(self) -> dict[str, Any]:
        return {"tab_id": self.tab_id, "cookies": [c.to_dict() for c in self.cookies]}


Message = Union[GrantMessage, RevokeMessage]


def encode_message(message: Message) -> str:
    """Serialise a message as JSON tagged with its ``type``."""
    if isinstance(message, GrantMessage):
        kind = "Grant"
    elif isinstance(message, RevokeMessage):
        kind = "Revoke"
    else:
        raise TypeError(f"cannot encode {type(message).__name__}")
    return json.dumps({**message.to_dict(), "type": kind}, separators=(",", ":"))


def decode_message(text: str) -> Message:
    """Parse a tagged JSON message; raise MessageError if it is not valid."""
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise MessageError(f"Invalid JSON received: {exc}") from exc
    kind = data.get("type") if isinstance(data, dict) else None
    if kind == "Grant":
        return GrantMessage.from_dict(data)
    if kind == "Revoke":
        return RevokeMessage.from_dict(data)
    raise MessageError(f"Unknown message type: {kind!r}")


class ShareServer:
    """WebSocket server that broadcasts grants and revocations to every connected peer."""

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self._clients: set[asyncio.Queue] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None
        self._ready = threading.Event()
        self._thread: threading.Thread | None = None
        self._error: BaseException | None = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def _handle(self, ws, *_args) -> None:
        print(f"New connection from {ws.remote_address}")
        queue: asyncio.Queue = asyncio.Queue(maxsize=_CHANNEL_CAPACITY)
        self._clients.add(queue)

        async def pump() -> None:
            while True:
                text = await queue.get()
                try:
                    await ws.send(text)
                except ConnectionClosed:
                    pass

        sender = asyncio.create_task(pump())
        try:
            async for _ in ws:
                pass
        except ConnectionClosed:
            pass
        finally:
            sender.cancel()
            self._clients.discard(queue)
        print("Client disconnected")

    def _broadcast(self, text: str) -> None:
        for queue in list(self._clients):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(text)

    async def serve(self) -> None:
        """Accept peers until :meth:`stop` is called."""
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        async with websockets.serve(self._handle, self.host, self.port) as server:
            self.port = next(iter(server.sockets)).getsockname()[1]
            print(f"Server is listening on {self.host}:{self.port}")
            self._ready.set()
            await self._stop_event.wait()

    def _run(self) -> None:
        try:
            asyncio.run(self.serve())
        except BaseException as exc:
            self._error = exc
        finally:
            self._ready.set()

    def start(self) -> None:
        """Run the server on a background thread; raise if it cannot bind."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        self._ready.wait()
        if self._error is not None:
            raise self._error

    def stop(self) -> None:
        if self._loop is not None and self._stop_event is not None:
            self._loop.call_soon_threadsafe(self._stop_event.set)
        if self._thread is not None:
            self._thread.join()
        self._loop = None

    def _publish(self, text: str) -> None:
        if self._loop is None:
            raise RuntimeError("server is not running")
        self._loop.call_soon_threadsafe(self._broadcast, text)

    def send_grant(self, grant: GrantMessage) -> None:
        text = encode_message(grant)
        print(f"Broadcasting grant: {text}")
        self._publish(text)

    def send_revoke(self, revoke: RevokeMessage) -> None:
        text = encode_message(revoke)
        print(f"Broadcasting revoke: {text}")
        self._publish(text)


def spawn_server(host: str, port: int) -> ShareServer:
    """Start a :class:`ShareServer` in the background and return it."""
    server = ShareServer(host, port)
    server.start()
    return server


def handle_message(message: str, remote_to_local: dict[str, str]) -> Message | None:
    """Apply one received message to the local browser; return it, or None if invalid."""
    print(f"Received: {message}")
    try:
        decoded = decode_message(message)
    except MessageError as exc:
        print(exc)
        return None
    if isinstance(decoded, GrantMessage):
        print(f"Importing URL with cookies: {decoded.url}")
        try:
            local_id = import_and_open_with_cookies_from_memory(decoded.cookies, decoded.url)
        except Exception:
            return decoded
        with _map_lock:
            remote_to_local[decoded.tab_id] = local_id
    else:
        with _map_lock:
            local_id = remote_to_local.get(decoded.tab_id, decoded.tab_id)
        print(f"Revoking cookies for tab {local_id}")
        try:
            revoke_cookies(local_id, [(c.name, c.domain, c.path) for c in decoded.cookies])
        except Exception as exc:
            print(f"Error revoking cookies: {exc}")
        else:
            print("Cookies revoked successfully")
    return decoded


async def connect_client(host: str, port: int, remote_to_local: dict[str, str]) -> None:
    """Connect to a peer's server and apply every message it sends until it closes."""
    shown = f"[{host}]" if ":" in host else host
    url = f"ws://{shown}:{port}"
    print(f"Connecting to {url}")
    try:
        ws = await websockets.connect(url)
    except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
        print(f"Failed to connect to {url}: {exc}")
        return
    print(f"Connected to server at {url}")
    pending = []
    try:
        async for text in ws:
            if not isinstance(text, str):
                break
            pending.append(
                asyncio.create_task(asyncio.to_thread(handle_message, text, remote_to_local))
            )
    except ConnectionClosed:
        pass
    finally:
        await ws.close()
    if pending:
        await asyncio.gather(*pending)
    print("WebSocket listener loop has ended")