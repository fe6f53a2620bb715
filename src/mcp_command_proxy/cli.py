"""命令行参数解析。

用法:
    mcp-command-proxy -p ExpoServer -c "expo start" -b 500 --port 8080
    mcp-command-proxy -c "python -i" --cwd ./work --env DEBUG=1 -- -q
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence

from .config import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_PREFIX, ProxyOptions
from .runtime.command_runner import DEFAULT_LOG_BUFFER_SIZE

__all__ = ["build_parser", "parse_args", "parse_env_pairs"]

EPILOG = """\
Example:
  mcp-command-proxy -p "ExpoServer" -c "expo start" -b 500 --port 8080

Arguments after "--" are appended to the command without whitespace splitting.
"""


def parse_env_pairs(pairs: Sequence[str]) -> dict[str, str]:
    """解析 KEY=VALUE 形式的环境变量覆盖项。

    Raises:
        ValueError: 格式不合法
    """
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"expected KEY=VALUE, got {pair!r}")
        env[key] = value
    return env


def build_parser() -> argparse.ArgumentParser:
    """构建参数解析器。"""
    parser = argparse.ArgumentParser(
        prog="mcp-command-proxy",
        description="MCP Command Proxy - Run CLI commands with MCP",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--prefix", "-p",
        default=DEFAULT_PREFIX,
        help=f'Name/prefix for the server (default: "{DEFAULT_PREFIX}")',
    )
    parser.add_argument(
        "--command", "-c",
        required=True,
        help="Command to run (required)",
    )
    parser.add_argument(
        "--buffer-size", "-b",
        type=int,
        default=DEFAULT_LOG_BUFFER_SIZE,
        help=f"Number of log entries to keep in memory (default: {DEFAULT_LOG_BUFFER_SIZE})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port for HTTP server (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help=f"Host for HTTP server (default: {DEFAULT_HOST})",
    )
    parser.add_argument(
        "--cwd",
        default=None,
        help="Working directory for the command (default: current directory)",
    )
    parser.add_argument(
        "--env", "-e",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Environment override for the command (repeatable)",
    )
    parser.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        help=argparse.SUPPRESS,
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> ProxyOptions:
    """解析命令行参数为 ProxyOptions。

    参数错误时由 argparse 打印用法并以状态码 2 退出。
    """
    parser = build_parser()
    ns = parser.parse_args(argv)

    extra = list(ns.args)
    if extra and extra[0] == "--":
        extra = extra[1:]

    try:
        env = parse_env_pairs(ns.env)
        return ProxyOptions(
            command=ns.command,
            prefix=ns.prefix,
            args=extra,
            cwd=ns.cwd,
            env=env,
            buffer_size=ns.buffer_size,
            host=ns.host,
            port=ns.port,
        )
    except ValueError as e:
        parser.error(str(e))
