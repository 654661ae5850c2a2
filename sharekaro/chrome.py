"""Chrome DevTools Protocol helpers: tabs, cookie export, import and revocation."""

from __future__ import annotations

import json
import subprocess
import sys
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import requests
import websocket

CDP_PORT = 9222
CDP_HTTP = f"http://localhost:{CDP_PORT}"

_TAB_EVENTS = frozenset(
    {"Target.targetCreated", "Target.targetDestroyed", "Target.targetInfoChanged"}
)

_LINUX_CANDIDATES = (
    "google-chrome-stable",
    "google-chrome",
    "chromium-browser",
    "chromium",
)


class CdpError(Exception):
    """Raised when the DevTools endpoint or a cookie document is not as expected."""


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def _require_str(data: dict, key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise CdpError(f"{what}: field {key!r} must be a string")
    return value


@dataclass
class ChromeTab:
    """A debuggable target as listed by the DevTools HTTP endpoint."""

    id: str
    title: str
    url: str
    web_socket_debugger_url: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> ChromeTab:
        if not isinstance(data, dict):
            raise CdpError("tab entry must be an object")
        ws_url = data.get("webSocketDebuggerUrl")
        if ws_url is not None and not isinstance(ws_url, str):
            raise CdpError("tab: field 'webSocketDebuggerUrl' must be a string")
        return cls(
            id=_require_str(data, "id", "tab"),
            title=_require_str(data, "title", "tab"),
            url=_require_str(data, "url", "tab"),
            web_socket_debugger_url=ws_url,
        )


def _is_bool(v: Any) -> bool:
    return isinstance(v, bool)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _is_u64(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and 0 <= v < 2**64


def _is_u16(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and 0 <= v <= 0xFFFF


def _is_str(v: Any) -> bool:
    return isinstance(v, str)


# (attribute, JSON key, validator or None for required strings), in wire order.
_COOKIE_FIELDS = (
    ("domain", "domain", None),
    ("expires", "expires", _is_number),
    ("http_only", "httpOnly", _is_bool),
    ("name", "name", None),
    ("path", "path", None),
    ("priority", "priority", _is_str),
    ("same_party", "sameParty", _is_bool),
    ("same_site", "sameSite", _is_str),
    ("secure", "secure", _is_bool),
    ("session", "session", _is_bool),
    ("size", "size", _is_u64),
    ("source_port", "sourcePort", _is_u16),
    ("source_scheme", "sourceScheme", _is_str),
    ("value", "value", None),
)
_COOKIE_KEYS = frozenset(key for _, key, _ in _COOKIE_FIELDS)


@dataclass
class Cookie:
    """A browser cookie in DevTools JSON form; unknown keys are kept in ``extra``."""

    name: str
    value: str
    domain: str
    path: str
    expires: float | None = None
    http_only: bool | None = None
    priority: str | None = None
    same_party: bool | None = None
    same_site: str | None = None
    secure: bool | None = None
    session: bool | None = None
    size: int | None = None
    source_port: int | None = None
    source_scheme: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Cookie:
        if not isinstance(data, dict):
            raise CdpError("cookie entry must be an object")
        kwargs: dict[str, Any] = {}
        for attr, key, check in _COOKIE_FIELDS:
            if check is None:
                kwargs[attr] = _require_str(data, key, "cookie")
                continue
            value = data.get(key)
            if value is not None and not check(value):
                raise CdpError(f"cookie: field {key!r} has an invalid value {value!r}")
            kwargs[attr] = value
        if kwargs["expires"] is not None:
            kwargs["expires"] = float(kwargs["expires"])
        kwargs["extra"] = {k: v for k, v in data.items() if k not in _COOKIE_KEYS}
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        out = {key: getattr(self, attr) for attr, key, _ in _COOKIE_FIELDS}
        out.update(self.extra)
        return out

    def set_cookie_params(self, strict: bool) -> dict[str, Any]:
        """Parameters for ``Network.setCookie``.

        With ``strict`` the secure and httpOnly flags are sent only when true;
        otherwise they are sent whenever they are known.
        """
        params: dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
        }
        if self.expires is not None:
            params["expires"] = self.expires
        for key, flag in (("secure", self.secure), ("httpOnly", self.http_only)):
            if flag is True or (not strict and flag is not None):
                params[key] = flag
        if self.same_site is not None:
            params["sameSite"] = self.same_site
        return params


def chrome_path() -> str:
    """Return the Chrome executable to start on this platform."""
    if sys.platform == "darwin":
        return "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
    if sys.platform.startswith("win"):
        return r"C:\Program Files\Google\Chrome\Application\chrome.exe"
    for candidate in _LINUX_CANDIDATES:
        if shutil.which(candidate):
            return candidate
    return "google-chrome"


def _real_profile_path() -> Path:
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library/Application Support/Google/Chrome/Default"
    if sys.platform.startswith("win"):
        return home / "AppData/Local/Google/Chrome/User Data/Default"
    return home / ".config/google-chrome/Default"


def launch_chrome_with_cdp(
    use_real_profile: str | None,
) -> tuple[subprocess.Popen, tempfile.TemporaryDirectory]:
    """Start Chrome with remote debugging on port 9222.

    The real profile is used when ``use_real_profile`` is "default" (any case);
    otherwise a fresh temporary profile is used. The temporary directory is
    returned so the caller controls its lifetime.
    """
    temp_profile = tempfile.TemporaryDirectory()
    if use_real_profile is not None and use_real_profile.lower() == "default":
        profile = _real_profile_path()
    else:
        profile = Path(temp_profile.name)
    process = subprocess.Popen(
        [
            chrome_path(),
            f"--remote-debugging-port={CDP_PORT}",
            f"--user-data-dir={profile}",
        ]
    )
    return process, temp_profile


def _list_targets() -> Any:
    return requests.get(f"{CDP_HTTP}/json").json()


def print_tabs_once() -> None:
    """Clear the terminal and print the current tab list."""
    try:
        tabs = _list_targets()
        if not isinstance(tabs, list):
            tabs = []
    except Exception:
        tabs = []
    print("\x1b[2J\x1b[1;1H")
    print("Current Chrome tabs:")
    for index, tab in enumerate(tabs):
        entry = tab if isinstance(tab, dict) else {}
        title = entry.get("title")
        url = entry.get("url")
        title = title if isinstance(title, str) else ""
        url = url if isinstance(url, str) else ""
        print(f'[{index}] "{title}"\n    {url}')
    print("--- (event-driven; updates instantly) ---")


def listen_tabs_ws() -> None:
    """Reprint the tab list whenever the browser reports a target change."""
    version_info = requests.get(f"{CDP_HTTP}/json/version").json()
    ws_url = version_info.get("webSocketDebuggerUrl") if isinstance(version_info, dict) else None
    if not isinstance(ws_url, str):
        raise CdpError("missing webSocketDebuggerUrl")
    socket = websocket.create_connection(ws_url)
    try:
        socket.send(
            _dumps(
                {
                    "id": 1,
                    "method": "Target.setDiscoverTargets",
                    "params": {"discover": True},
                }
            )
        )
        print_tabs_once()
        print("Listening for tab events (press Ctrl+C to quit)...")
        while True:
            message = socket.recv()
            if not isinstance(message, str):
                continue
            try:
                event = json.loads(message)
            except ValueError:
                continue
            if isinstance(event, dict) and event.get("method") in _TAB_EVENTS:
                print_tabs_once()
    finally:
        socket.close()


def fetch_tabs() -> list[ChromeTab]:
    """Return every target the DevTools endpoint lists."""
    data = _list_targets()
    if not isinstance(data, list):
        raise CdpError("tabs not array")
    return [ChromeTab.from_dict(item) for item in data]


def get_ws_url_for_tab(tab_id: str) -> str:
    """Look up the debugger WebSocket URL of the tab with ``tab_id``."""
    tabs = _list_targets()
    if not isinstance(tabs, list):
        raise CdpError("tabs not array")
    for tab in tabs:
        if isinstance(tab, dict) and tab.get("id") == tab_id:
            ws_url = tab.get("webSocketDebuggerUrl")
            if not isinstance(ws_url, str):
                raise CdpError("missing webSocketDebuggerUrl")
            return ws_url
    raise CdpError("WebSocketDebuggerUrl not found for tab")


def _tab_ws_url(tab: ChromeTab) -> str:
    return tab.web_socket_debugger_url or get_ws_url_for_tab(tab.id)


def _request_cookies(tab: ChromeTab) -> Any:
    socket = websocket.create_connection(_tab_ws_url(tab))
    try:
        socket.send(
            _dumps(
                {
                    "id": 1,
                    "method": "Network.getCookies",
                    "params": {"urls": [tab.url]},
                }
            )
        )
        reply = json.loads(socket.recv())
    finally:
        socket.close()
    result = reply.get("result") if isinstance(reply, dict) else None
    return result.get("cookies") if isinstance(result, dict) else None


def cookie_export_filename(title: str) -> str:
    """File name under which a tab's cookies are exported."""
    return "cookies_{}.json".format(title.replace(" ", "_").replace("/", "_"))


def export_cookies_for_tab(tab: ChromeTab) -> str:
    """Write the tab's cookies as pretty JSON in the working directory; return the file name."""
    cookies = _request_cookies(tab)
    filename = cookie_export_filename(tab.title)
    Path(filename).write_text(json.dumps(cookies, indent=2), encoding="utf-8")
    return filename


def get_cookies_for_tab(tab: ChromeTab) -> list[Cookie]:
    """Fetch the cookies that apply to the tab's URL."""
    cookies = _request_cookies(tab)
    if not isinstance(cookies, list):
        raise CdpError("cookies not array")
    return [Cookie.from_dict(item) for item in cookies]


def parse_cookies(value: Any) -> list[Cookie]:
    """Read cookies from a bare JSON array or an object with a ``cookies`` array."""
    if isinstance(value, list):
        return [Cookie.from_dict(item) for item in value]
    if isinstance(value, dict) and isinstance(value.get("cookies"), list):
        return [Cookie.from_dict(item) for item in value["cookies"]]
    raise CdpError("Unknown cookie JSON format")


def universal_cookie_loader(path: str | Path) -> list[Cookie]:
    """Load cookies from a JSON file in either supported layout."""
    content = Path(path).read_text(encoding="utf-8")
    return parse_cookies(json.loads(content))


def normalize_url(raw: str) -> str:
    """Prefix ``https://`` unless the URL already has an http(s) scheme."""
    if raw.startswith(("http://", "https://")):
        return raw
    return f"https://{raw}"


def _open_new_tab(url: str) -> dict:
    response = requests.put(f"{CDP_HTTP}/json/new?{url}")
    new_tab = json.loads(response.text)
    if not isinstance(new_tab, dict):
        raise CdpError("unexpected reply when opening a tab")
    return new_tab


def _install_cookies_and_navigate(
    ws_url: str, cookies: Iterable[Cookie], url: str, strict: bool
) -> None:
    socket = websocket.create_connection(ws_url)
    try:
        socket.send(_dumps({"id": 1, "method": "Network.enable"}))
        for index, cookie in enumerate(cookies):
            socket.send(
                _dumps(
                    {
                        "id": 2 + index,
                        "method": "Network.setCookie",
                        "params": cookie.set_cookie_params(strict),
                    }
                )
            )
        socket.send(
            _dumps({"id": 10000, "method": "Page.navigate", "params": {"url": url}})
        )
    finally:
        socket.close()


def import_and_open_with_cookies(cookie_path: str | Path, url: str) -> None:
    """Open a new tab at ``url`` after installing cookies read from ``cookie_path``."""
    try:
        cookies = universal_cookie_loader(cookie_path)
    except Exception as exc:
        print(f"JSON decode error: {exc}", file=sys.stderr)
        raise
    to_open = normalize_url(url)
    new_tab = _open_new_tab(to_open)
    ws_url = new_tab.get("webSocketDebuggerUrl")
    if not isinstance(ws_url, str):
        raise CdpError("missing webSocketDebuggerUrl")
    _install_cookies_and_navigate(ws_url, cookies, to_open, strict=False)


def import_and_open_with_cookies_from_memory(cookies: Iterable[Cookie], url: str) -> str:
    """Open a new tab at ``url`` with the given cookies; return the new tab's id."""
    to_open = normalize_url(url)
    new_tab = _open_new_tab(to_open)
    local_tab_id = new_tab.get("id")
    if not isinstance(local_tab_id, str):
        raise CdpError("missing new tab ID")
    ws_url = new_tab.get("webSocketDebuggerUrl")
    if not isinstance(ws_url, str):
        raise CdpError("missing webSocketDebuggerUrl")
    _install_cookies_and_navigate(ws_url, cookies, to_open, strict=True)
    return local_tab_id


def revoke_cookies(tab_id: str, cookies: Iterable[tuple[str, str, str]]) -> None:
    """Delete cookies, given as (name, domain, path), in the live tab ``tab_id``."""
    tabs = _list_targets()
    if not isinstance(tabs, list):
        raise CdpError("tabs not array")
    entry = next(
        (t for t in tabs if isinstance(t, dict) and t.get("id") == tab_id), None
    )
    if entry is None:
        raise CdpError("tab not found")
    ws_url = entry.get("webSocketDebuggerUrl")
    if not isinstance(ws_url, str):
        raise CdpError("missing webSocketDebuggerUrl")
    socket = websocket.create_connection(ws_url)
    try:
        for index, (name, domain, path) in enumerate(cookies):
            socket.send(
                _dumps(
                    {
                        "id": 10000 + index,
                        "method": "Network.deleteCookies",
                        "params": {"name": name, "domain": domain, "path": path},
                    }
                )
            )
    finally:
        socket.close()