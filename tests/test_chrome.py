import json
from unittest.mock import MagicMock, patch

import pytest

from sharekaro import chrome
from sharekaro.chrome import CdpError, ChromeTab, Cookie

COOKIE = {
    "domain": ".example.com",
    "expires": 1700000000.5,
    "httpOnly": True,
    "name": "session",
    "path": "/",
    "priority": "Medium",
    "sameParty": False,
    "sameSite": "Lax",
    "secure": False,
    "session": False,
    "size": 12,
    "sourcePort": 443,
    "sourceScheme": "Secure",
    "value": "token",
}


class FakeSocket:
    def __init__(self, replies=()):
        self.sent = []
        self.replies = list(replies)
        self.closed = False

    def send(self, text):
        self.sent.append(json.loads(text))

    def recv(self):
        return self.replies.pop(0)

    def close(self):
        self.closed = True


def _response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.text = json.dumps(payload)
    return resp


def test_parse_cookies_from_array_file(tmp_path):
    path = tmp_path / "cookies.json"
    path.write_text(json.dumps([COOKIE]))
    cookies = chrome.universal_cookie_loader(path)
    assert len(cookies) == 1
    assert cookies[0].name == "session"
    assert cookies[0].http_only is True
    assert cookies[0].source_port == 443


def test_parse_cookies_from_object_file(tmp_path):
    path = tmp_path / "cookies.json"
    path.write_text(json.dumps({"cookies": [COOKIE, dict(COOKIE, name="other")]}))
    cookies = chrome.universal_cookie_loader(path)
    assert [c.name for c in cookies] == ["session", "other"]


def test_unknown_format_raises():
    with pytest.raises(CdpError, match="Unknown cookie JSON format"):
        chrome.parse_cookies({"items": []})


def test_missing_required_field_raises():
    bad = dict(COOKIE)
    del bad["value"]
    with pytest.raises(CdpError):
        Cookie.from_dict(bad)


def test_wrong_optional_type_raises():
    with pytest.raises(CdpError):
        Cookie.from_dict(dict(COOKIE, secure="yes"))


def test_minimal_cookie_defaults_to_none():
    cookie = Cookie.from_dict(
        {"domain": "example.com", "name": "a", "path": "/", "value": "token"}
    )
    assert cookie.expires is None and cookie.secure is None
    assert cookie.extra == {}


def test_extra_fields_round_trip():
    data = dict(COOKIE, partitionKey="top")
    cookie = Cookie.from_dict(data)
    assert cookie.extra == {"partitionKey": "top"}
    assert cookie.to_dict() == data


def test_to_dict_includes_nulls():
    cookie = Cookie(name="a", value="token", domain="example.com", path="/")
    out = cookie.to_dict()
    assert out["expires"] is None
    assert out["sameSite"] is None
    assert out["name"] == "a"


def test_set_cookie_params_lenient_includes_false_flags():
    cookie = Cookie.from_dict(COOKIE)
    params = cookie.set_cookie_params(False)
    assert params == {
        "name": "session",
        "value": "token",
        "domain": ".example.com",
        "path": "/",
        "expires": 1700000000.5,
        "secure": False,
        "httpOnly": True,
        "sameSite": "Lax",
    }


def test_set_cookie_params_strict_drops_false_flags():
    cookie = Cookie.from_dict(COOKIE)
    params = cookie.set_cookie_params(True)
    assert "secure" not in params
    assert params["httpOnly"] is True


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("example.com", "https://example.com"),
        ("http://example.com", "http://example.com"),
        ("https://example.com/a", "https://example.com/a"),
    ],
)
def test_normalize_url(raw, expected):
    assert chrome.normalize_url(raw) == expected


def test_cookie_export_filename():
    assert chrome.cookie_export_filename("My Site/Home") == "cookies_My_Site_Home.json"


def test_chrome_tab_from_dict():
    tab = ChromeTab.from_dict(
        {"id": "T1", "title": "t", "url": "https://example.com", "type": "page"}
    )
    assert tab == ChromeTab("T1", "t", "https://example.com", None)


def test_chrome_tab_missing_id_raises():
    with pytest.raises(CdpError):
        ChromeTab.from_dict({"title": "t", "url": "u"})


def test_fetch_tabs():
    payload = [{"id": "A", "title": "x", "url": "u", "webSocketDebuggerUrl": "ws://a"}]
    with patch("requests.get", return_value=_response(payload)) as get:
        tabs = chrome.fetch_tabs()
    assert get.call_args[0][0] == "http://localhost:9222/json"
    assert tabs[0].web_socket_debugger_url == "ws://a"


def test_get_ws_url_for_tab_found_and_missing():
    payload = [{"id": "A", "webSocketDebuggerUrl": "ws://a"}]
    with patch("requests.get", return_value=_response(payload)):
        assert chrome.get_ws_url_for_tab("A") == "ws://a"
        with pytest.raises(CdpError, match="not found"):
            chrome.get_ws_url_for_tab("B")


def test_get_cookies_for_tab():
    sock = FakeSocket([json.dumps({"id": 1, "result": {"cookies": [COOKIE]}})])
    tab = ChromeTab("A", "t", "https://example.com", "ws://a")
    with patch("websocket.create_connection", return_value=sock) as conn:
        cookies = chrome.get_cookies_for_tab(tab)
    conn.assert_called_once_with("ws://a")
    assert sock.sent[0]["method"] == "Network.getCookies"
    assert sock.sent[0]["params"] == {"urls": ["https://example.com"]}
    assert cookies[0].value == "token"
    assert sock.closed


def test_export_cookies_for_tab(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    sock = FakeSocket([json.dumps({"id": 1, "result": {"cookies": [COOKIE]}})])
    tab = ChromeTab("A", "My Tab", "https://example.com", "ws://a")
    with patch("websocket.create_connection", return_value=sock):
        name = chrome.export_cookies_for_tab(tab)
    assert name == "cookies_My_Tab.json"
    assert json.loads((tmp_path / name).read_text()) == [COOKIE]


def test_import_from_memory_sends_cookies_and_navigates():
    sock = FakeSocket()
    new_tab = {"id": "LOCAL", "webSocketDebuggerUrl": "ws://new"}
    cookie = Cookie.from_dict(COOKIE)
    with patch("requests.put", return_value=_response(new_tab)) as put, patch(
        "websocket.create_connection", return_value=sock
    ):
        tab_id = chrome.import_and_open_with_cookies_from_memory([cookie], "example.com")
    assert tab_id == "LOCAL"
    assert put.call_args[0][0] == "http://localhost:9222/json/new?https://example.com"
    assert [m["id"] for m in sock.sent] == [1, 2, 10000]
    assert sock.sent[1]["params"] == cookie.set_cookie_params(True)
    assert sock.sent[2]["params"] == {"url": "https://example.com"}


def test_import_from_memory_missing_id():
    with patch("requests.put", return_value=_response({"webSocketDebuggerUrl": "ws://x"})):
        with pytest.raises(CdpError, match="missing new tab ID"):
            chrome.import_and_open_with_cookies_from_memory([], "example.com")


def test_import_from_file(tmp_path):
    path = tmp_path / "c.json"
    path.write_text(json.dumps({"cookies": [COOKIE]}))
    sock = FakeSocket()
    with patch(
        "requests.put", return_value=_response({"id": "N", "webSocketDebuggerUrl": "ws://n"})
    ) as put, patch("websocket.create_connection", return_value=sock) as conn:
        result = chrome.import_and_open_with_cookies(path, "https://example.com")
    assert result is None
    assert put.call_args[0][0] == "http://localhost:9222/json/new?https://example.com"
    conn.assert_called_once_with("ws://n")
    assert [m["method"] for m in sock.sent] == [
        "Network.enable",
        "Network.setCookie",
        "Page.navigate",
    ]
    assert sock.sent[1]["params"]["secure"] is False
    assert sock.sent[-1]["params"] == {"url": "https://example.com"}


def test_import_from_bad_file_raises(tmp_path):
    path = tmp_path / "c.json"
    path.write_text(json.dumps({"nothing": 1}))
    with pytest.raises(CdpError):
        chrome.import_and_open_with_cookies(path, "example.com")


def test_revoke_cookies():
    sock = FakeSocket()
    payload = [{"id": "A", "webSocketDebuggerUrl": "ws://a"}]
    with patch("requests.get", return_value=_response(payload)), patch(
        "websocket.create_connection", return_value=sock
    ) as conn:
        result = chrome.revoke_cookies("A", [("n1", "d1", "/"), ("n2", "d2", "/x")])
    assert result is None
    conn.assert_called_once_with("ws://a")
    assert [m["id"] for m in sock.sent] == [10000, 10001]
    assert sock.sent[1] == {
        "id": 10001,
        "method": "Network.deleteCookies",
        "params": {"name": "n2", "domain": "d2", "path": "/x"},
    }


def test_revoke_cookies_tab_not_found():
    with patch("requests.get", return_value=_response([])):
        with pytest.raises(CdpError, match="tab not found"):
            chrome.revoke_cookies("A", [])


def test_print_tabs_once_lists_tabs(capsys):
    payload = [{"title": "Home", "url": "https://example.com"}]
    with patch("requests.get", return_value=_response(payload)):
        chrome.print_tabs_once()
    out = capsys.readouterr().out
    assert '[0] "Home"\n    https://example.com' in out


def test_print_tabs_once_on_error(capsys):
    with patch("requests.get", side_effect=OSError("down")):
        chrome.print_tabs_once()
    out = capsys.readouterr().out
    assert "Current Chrome tabs:" in out
    assert "[0]" not in out


def test_chrome_path_linux_picks_available_candidate():
    with patch("sys.platform", "linux"), patch(
        "shutil.which", side_effect=lambda n: "/usr/bin/chromium" if n == "chromium" else None
    ):
        assert chrome.chrome_path() == "chromium"


def test_chrome_path_linux_fallback():
    with patch("sys.platform", "linux"), patch("shutil.which", return_value=None):
        assert chrome.chrome_path() == "google-chrome"


def test_launch_chrome_uses_temp_profile():
    with patch("subprocess.Popen") as popen, patch("sys.platform", "darwin"):
        proc, temp = chrome.launch_chrome_with_cdp(None)
        args = popen.call_args[0][0]
        assert proc is popen.return_value
        assert args[1] == "--remote-debugging-port=9222"
        assert args[2] == f"--user-data-dir={temp.name}"
        temp.cleanup()


def test_launch_chrome_real_profile():
    with patch("subprocess.Popen") as popen, patch("sys.platform", "linux"), patch(
        "shutil.which", return_value=None
    ):
        proc, temp = chrome.launch_chrome_with_cdp("DEFAULT")
        args = popen.call_args[0][0]
        temp_name = temp.name
        temp.cleanup()
    assert proc is popen.return_value
    assert args[0] == "google-chrome"
    assert args[1] == "--remote-debugging-port=9222"
    assert args[2].endswith("google-chrome/Default")
    assert temp_name not in args[2]