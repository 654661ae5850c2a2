# sharekaro

Share a live browser session with a peer. sharekaro starts Chrome with the
DevTools Protocol enabled on port 9222, starts a share server on
`0.0.0.0:9234`, and shows the open tabs in a small Tk window. From there you can:

- **Share** a tab: its URL and cookies are broadcast to every connected peer,
  which opens the same page with those cookies set in its own Chrome.
- **Revoke** a tab: each peer deletes the cookies it was given for that tab.
- **Export** a tab's cookies to `cookies_<title>.json` in the working
  directory by clicking its card (spaces and slashes in the title become `_`).
- **Import** a cookie JSON file (either a bare list or `{"cookies": [...]}`)
  and open a URL with those cookies set. A URL without `http://` or
  `https://` is opened with `https://` in front.

The tab list is refreshed every second in the background; the ⟳ button
refreshes it at once and ✖ closes the window.

## Install

```
pip install .
```

Chrome or Chromium must be installed, and Python must have Tk support
(`tkinter`). On Linux the first of `google-chrome-stable`, `google-chrome`,
`chromium-browser` and `chromium` found on the path is used.

## Run

```
sharekaro
```

This launches Chrome with a throwaway profile, starts the share server and
opens the window. To use your everyday Chrome profile instead of a temporary
one:

```
sharekaro --profile default
```

To receive tabs from another machine, enter its address in the
"Peer to listen on" field (for example `192.168.1.20:9234`, or an IPv6
address in brackets such as `[::1]:9234`) and press **Listen**. The field
takes an IP address and port only; anything else is ignored.

The share server has no authentication: anyone who can reach port 9234
receives every shared tab's cookies, and with them its logged-in session.

## Library use

The pieces are also usable on their own:

```python
from sharekaro.chrome import fetch_tabs, get_cookies_for_tab, universal_cookie_loader
from sharekaro.network import GrantMessage, encode_message, decode_message

tabs = fetch_tabs()
cookies = get_cookies_for_tab(tabs[0])
text = encode_message(GrantMessage(tab_id=tabs[0].id, url=tabs[0].url, cookies=cookies))
assert decode_message(text).url == tabs[0].url
```

- `sharekaro.chrome` talks to Chrome on `localhost:9222`: `fetch_tabs`,
  `get_cookies_for_tab`, `export_cookies_for_tab`, `universal_cookie_loader`,
  `import_and_open_with_cookies`, `import_and_open_with_cookies_from_memory`,
  `revoke_cookies`, and `listen_tabs_ws`, which reprints the tab list in the
  terminal whenever a tab is created, closed or changed. Problems with the
  DevTools replies or cookie files raise `CdpError`.
- `sharekaro.network` carries `GrantMessage` and `RevokeMessage` as JSON
  tagged with a `type` field (`encode_message`, `decode_message`).
  `spawn_server(host, port)` starts a `ShareServer` on a background thread,
  with `send_grant`, `send_revoke` and `stop`. `connect_client(host, port,
  remote_to_local)` is a coroutine that connects to a peer and applies each
  message it receives, recording which local tab each remote tab was opened as.

## Tests

```
pip install ".[test]"
pytest
```