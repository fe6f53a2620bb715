"""MCP Command Proxy - 通过 MCP 代理任意 CLI 命令并收集日志。

在伪终端中运行命令，把输出保存在有界内存日志中，并通过 MCP (HTTP + SSE)
提供日志查询、按键注入、状态查询和关闭操作。

用法:
    mcp-command-proxy -p ExpoServer -c "expo start" --port 8080
"""

__version__ = "0.1.0"

from .app import main
from .runtime import CircularBuffer, CommandRunner, LogEntry, ProcessStatus, RunnerEvent

__all__ = [
    "__version__",
    "main",
    "CircularBuffer",
    "CommandRunner",
    "LogEntry",
    "ProcessStatus",
    "RunnerEvent",
]
