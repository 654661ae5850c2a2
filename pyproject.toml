[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sharekaro"
version = "0.1.0"
description = "Share and revoke browser tab sessions between peers through the Chrome DevTools Protocol"
requires-python = ">=3.10"
keywords = ["chrome", "devtools", "cdp", "cookies", "session", "sharing", "websocket"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: X11 Applications",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Session",
]
dependencies = [
    "requests",
    "websocket-client",
    "websockets",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
sharekaro = "sharekaro.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["sharekaro"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
