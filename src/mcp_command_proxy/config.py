"""CMP 配置管理。

分两层：
- ProxyOptions: 单次运行的代理参数（由命令行解析得到）
- Config: 进程级行为开关（从环境变量加载）

环境变量:
    CMP_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

    CMP_FORWARD_STDIN: stdin 是 TTY 时是否把本地按键转发给子进程
        - true/1/yes = 转发 (默认)
        - false/0/no = 不转发

    CMP_ECHO_OUTPUT: 是否把子进程输出回显到本进程 stdout
        - true/1/yes = 回显 (默认)
        - false/0/no = 不回显

    CMP_STOP_TIMEOUT: 关闭时发送 SIGTERM 后等待子进程退出的时间（秒）
        - 默认 2.0 秒，超时后发送 SIGKILL

    CMP_SIGINT_MODE: SIGINT (Ctrl+C) 处理模式
        - exit = 停止子进程并退出 (默认)
        - stop_then_exit = 第一次只停止子进程，第二次才退出

    CMP_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间（秒）
        - 默认 1.0 秒
        - 在此时间窗口内第二次 Ctrl+C 将强制退出
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .runtime.command_runner import DEFAULT_LOG_BUFFER_SIZE

__all__ = [
    "Config",
    "ProxyOptions",
    "SigintMode",
    "load_config",
    "get_config",
    "reload_config",
    "DEFAULT_PREFIX",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
]

DEFAULT_PREFIX = "CommandProxy"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080


class SigintMode(Enum):
    """SIGINT 处理模式。

    - EXIT: 停止子进程并退出（传统行为）
    - STOP_THEN_EXIT: 第一次只停止子进程，第二次 SIGINT 才退出
    """

    EXIT = "exit"
    STOP_THEN_EXIT = "stop_then_exit"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """从字符串解析模式，无效值返回 EXIT。"""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.EXIT


@dataclass
class ProxyOptions:
    """单次运行的代理参数。

    Attributes:
        command: 要执行的命令行（按空白切分，不支持 shell 引号）
        prefix: 服务器显示名前缀，用于日志和 MCP server 名称
        args: 追加在命令之后的额外参数
        cwd: 子进程工作目录（None = 当前目录）
        env: 覆盖到当前环境之上的环境变量
        buffer_size: 日志缓冲区容量
        host: HTTP 监听地址
        port: HTTP 监听端口
    """

    command: str
    prefix: str = DEFAULT_PREFIX
    args: list[str] = field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    buffer_size: int = DEFAULT_LOG_BUFFER_SIZE
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    def __post_init__(self) -> None:
        if not self.command or not self.command.strip():
            raise ValueError("command is required")
        if not self.prefix or not self.prefix.strip():
            raise ValueError("prefix must not be empty")
        if self.buffer_size < 1:
            raise ValueError(f"buffer_size must be >= 1, got {self.buffer_size}")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")
        if self.cwd is not None and not Path(self.cwd).is_dir():
            raise ValueError(f"cwd is not a directory: {self.cwd}")

    @property
    def server_name(self) -> str:
        return f"{self.prefix} MCP Server"

    def child_env(self) -> dict[str, str]:
        """子进程环境：当前环境叠加覆盖项。"""
        return {**os.environ, **self.env}


@dataclass
class Config:
    """CMP 进程级配置。

    Attributes:
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        forward_stdin: 是否转发本地按键
        echo_output: 是否回显子进程输出
        stop_timeout: SIGTERM 之后等待子进程退出的时间（秒）
        sigint_mode: SIGINT 处理模式
        sigint_double_tap_window: 双击退出窗口时间（秒）
    """

    log_debug: bool = False
    log_file: str | None = None
    forward_stdin: bool = True
    echo_output: bool = True
    stop_timeout: float = 2.0
    sigint_mode: SigintMode = SigintMode.EXIT
    sigint_double_tap_window: float = 1.0

    def __repr__(self) -> str:
        return (
            f"Config(log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"forward_stdin={self.forward_stdin}, "
            f"echo_output={self.echo_output}, "
            f"stop_timeout={self.stop_timeout}, "
            f"sigint_mode={self.sigint_mode.value}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """解析浮点数环境变量，并限制在 [low, high] 范围内。"""
    if not value:
        return default
    try:
        return max(low, min(float(value), high))
    except ValueError:
        return default


def _parse_sigint_mode(value: str | None) -> SigintMode:
    """解析 SIGINT 模式环境变量。"""
    if not value:
        return SigintMode.EXIT
    return SigintMode.from_string(value)


def _generate_log_file_path() -> str:
    """生成临时目录下带时间戳的日志文件路径。"""
    log_dir = Path(tempfile.gettempdir()) / "mcp-command-proxy"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"cmp_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("CMP_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        log_debug=log_debug,
        log_file=log_file,
        forward_stdin=_parse_bool(os.environ.get("CMP_FORWARD_STDIN"), default=True),
        echo_output=_parse_bool(os.environ.get("CMP_ECHO_OUTPUT"), default=True),
        stop_timeout=_parse_float(
            os.environ.get("CMP_STOP_TIMEOUT"), default=2.0, low=0.1, high=30.0
        ),
        sigint_mode=_parse_sigint_mode(os.environ.get("CMP_SIGINT_MODE")),
        sigint_double_tap_window=_parse_float(
            os.environ.get("CMP_SIGINT_DOUBLE_TAP_WINDOW"), default=1.0, low=0.1, high=10.0
        ),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
