"""Share and revoke browser tab sessions between peers through the Chrome DevTools Protocol."""

__version__ = "0.1.0"