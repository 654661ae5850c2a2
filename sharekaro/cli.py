"""Command line entry point: start Chrome, the share server and the window."""

from __future__ import annotations

import argparse
import tkinter as tk

from sharekaro.chrome import launch_chrome_with_cdp
from sharekaro.gui import ChromeTabApp
from sharekaro.network import spawn_server

SERVER_HOST = "0.0.0.0"
SERVER_PORT = 9234


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sharekaro", description="Share browser sessions with peers.")
    parser.add_argument("--profile", default=None, help='use the real Chrome profile with "default"')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    _process, temp_profile = launch_chrome_with_cdp(args.profile)
    with temp_profile:
        server = spawn_server(SERVER_HOST, SERVER_PORT)
        try:
            root = tk.Tk()
            ChromeTabApp(root, server)
            root.mainloop()
        finally:
            server.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())