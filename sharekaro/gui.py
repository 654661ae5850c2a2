"""Desktop window listing browser tabs with share, revoke, export and import actions."""

from __future__ import annotations

import asyncio
import ipaddress
import threading
import time
import tkinter as tk
from dataclasses import dataclass
from pathlib import Path
from tkinter import filedialog

from sharekaro.chrome import (
    ChromeTab,
    export_cookies_for_tab,
    fetch_tabs,
    get_cookies_for_tab,
    import_and_open_with_cookies,
)
from sharekaro.network import (
    GrantMessage,
    RevokeCookie,
    RevokeMessage,
    ShareServer,
    connect_client,
)

_CARD_WIDTH = 260
_NO_TABS = "No tabs found.\nEnsure Chrome is running with --remote-debugging-port=9222."


def clip(s: str, max_len: int) -> str:
    """Shorten ``s`` to ``max_len`` characters, marking the cut with an ellipsis."""
    return s[:max_len] + "…" if len(s) > max_len else s


def parse_listen_address(text: str) -> tuple[str, int] | None:
    """Parse ``ip:port`` (IPv6 in brackets); return None if it is not a socket address."""
    host, sep, port_text = text.strip().rpartition(":")
    if not sep or not port_text.isdigit():
        return None
    port = int(port_text)
    if port > 0xFFFF:
        return None
    bracketed = host.startswith("[") and host.endswith("]")
    if bracketed:
        host = host[1:-1]
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return None
    if (address.version == 6) != bracketed:
        return None
    return host, port


@dataclass
class CookieImportState:
    """What the import form holds and the last status it reported."""

    url_to_open: str = ""
    last_status: str | None = None
    last_path: Path | None = None

    def open_tab(self) -> str:
        """Open the URL with the chosen cookie file and record the outcome."""
        if self.last_path is not None and self.url_to_open.strip():
            try:
                import_and_open_with_cookies(self.last_path, self.url_to_open)
            except Exception as exc:
                self.last_status = f"Error: {exc}"
            else:
                self.last_status = "Tab opened successfully"
        else:
            self.last_status = "Select a file and enter a URL to proceed"
        return self.last_status


class ChromeTabApp:
    """The main window."""

    def __init__(self, root: tk.Tk, server: ShareServer) -> None:
        self.root = root
        self.server = server
        self.cookie_import = CookieImportState()
        self.remote_to_local: dict[str, str] = {}
        self.listening = False
        self._tabs: list[ChromeTab] = []
        self._lock = threading.Lock()
        self._shown: list[ChromeTab] | None = None

        root.title("ShareKaro")
        bar = tk.Frame(root, bg="#141414")
        bar.pack(fill="x")
        tk.Label(bar, text="ShareKaro", bg="#141414", fg="white").pack(side="left", padx=4)
        tk.Button(bar, text="✖", command=root.destroy).pack(side="right")
        tk.Button(bar, text="⟳", command=self.refresh_tabs).pack(side="right")

        listen_row = tk.Frame(root)
        listen_row.pack(fill="x", pady=4)
        tk.Label(listen_row, text="Peer to listen on:").pack(side="left")
        self._listen_addr = tk.StringVar(value="0.0.0.0:9234")
        tk.Entry(listen_row, textvariable=self._listen_addr).pack(side="left")
        self._listen_button = tk.Button(listen_row, text="Listen", command=self.start_listening)
        self._listen_button.pack(side="left")

        self._tabs_frame = tk.Frame(root)
        self._tabs_frame.pack(fill="both", expand=True, pady=8)

        tk.Label(root, text="Import Cookies and Open Tab").pack(anchor="w")
        file_row = tk.Frame(root)
        file_row.pack(fill="x")
        tk.Button(file_row, text="Choose JSON File", command=self.choose_file).pack(side="left")
        self._path_label = tk.Label(file_row, text="")
        self._path_label.pack(side="left")

        url_row = tk.Frame(root)
        url_row.pack(fill="x")
        tk.Label(url_row, text="URL to open:").pack(side="left")
        self._url = tk.StringVar()
        tk.Entry(url_row, textvariable=self._url).pack(side="left")
        tk.Button(url_row, text="Open", command=self.open_tab).pack(side="left")

        self._status = tk.Label(root, text="")
        self._status.pack(anchor="w")

        threading.Thread(target=self._poll_tabs, daemon=True).start()
        self._tick()

    def _poll_tabs(self) -> None:
        while True:
            self._fetch_once()
            time.sleep(1)

    def _fetch_once(self) -> None:
        try:
            tabs = fetch_tabs()
        except Exception:
            return
        with self._lock:
            self._tabs = tabs

    def _tick(self) -> None:
        self._render()
        self.root.after(200, self._tick)

    def _set_status(self, text: str) -> None:
        self.cookie_import.last_status = text
        self._status.config(text=text)

    def _render(self) -> None:
        with self._lock:
            tabs = list(self._tabs)
        if tabs == self._shown:
            return
        self._shown = tabs
        for child in self._tabs_frame.winfo_children():
            child.destroy()
        if not tabs:
            tk.Label(self._tabs_frame, text=_NO_TABS, fg="#c86464").pack(pady=40)
            return
        cols = max(1, self.root.winfo_width() // (_CARD_WIDTH + 16))
        for index, tab in enumerate(tabs):
            card = tk.Frame(self._tabs_frame, bg="#282828", width=_CARD_WIDTH, padx=8, pady=8)
            card.grid(row=index // cols, column=index % cols, padx=8, pady=8, sticky="nsew")
            head = tk.Frame(card, bg="#282828")
            head.pack(fill="x")
            tk.Label(head, text=f"{index + 1}.", bg="#282828", fg="white").pack(side="left")
            tk.Label(head, text=tab.title, bg="#282828", fg="white").pack(side="left")
            tk.Button(head, text="Share", command=lambda t=tab: self.share_tab(t)).pack(side="left")
            tk.Button(head, text="Revoke", command=lambda t=tab: self.revoke_tab(t)).pack(side="left")
            url = tk.Label(card, text=clip(tab.url, 45), bg="#282828", fg="white", font="TkFixedFont")
            url.pack(anchor="w")
            for widget in (card, url):
                widget.bind("<Button-1>", lambda _e, t=tab: self.export_tab(t))

    def refresh_tabs(self) -> None:
        self._fetch_once()
        self._render()

    def _cookies(self, tab: ChromeTab):
        try:
            return get_cookies_for_tab(tab)
        except Exception:
            return []

    def share_tab(self, tab: ChromeTab) -> None:
        self.server.send_grant(GrantMessage(tab.id, tab.url, self._cookies(tab)))

    def revoke_tab(self, tab: ChromeTab) -> None:
        cookies = [RevokeCookie(c.name, c.domain, c.path) for c in self._cookies(tab)]
        self.server.send_revoke(RevokeMessage(tab.id, cookies))

    def export_tab(self, tab: ChromeTab) -> None:
        try:
            path = export_cookies_for_tab(tab)
        except Exception as exc:
            self._set_status(f"Failed to export cookies: {exc}")
        else:
            self._set_status(f"Cookies exported to {path}")

    def start_listening(self) -> None:
        if self.listening:
            return
        address = parse_listen_address(self._listen_addr.get())
        if address is None:
            return
        host, port = address
        threading.Thread(
            target=lambda: asyncio.run(connect_client(host, port, self.remote_to_local)),
            daemon=True,
        ).start()
        self.listening = True
        self._listen_button.config(text="Listening…", state="disabled")

    def choose_file(self) -> None:
        chosen = filedialog.askopenfilename(filetypes=[("JSON", "*.json")])
        if chosen:
            path = Path(chosen)
            self.cookie_import.last_path = path
            self._path_label.config(text=str(path))
            self._set_status(f"Loaded {path}")

    def open_tab(self) -> None:
        self.cookie_import.url_to_open = self._url.get()
        self._set_status(self.cookie_import.open_tab())