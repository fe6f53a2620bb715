"""Tool Handlers 模块。

提供工具处理器抽象和具体实现。
"""

from .base import ToolContext, ToolError, ToolHandler
from .keys import SendKeyPressHandler
from .logs import GetRecentLogsHandler, dump_logs, select_logs
from .process import GetProcessStatusHandler, ShutdownHandler

__all__ = [
    "ToolContext",
    "ToolError",
    "ToolHandler",
    "GetRecentLogsHandler",
    "SendKeyPressHandler",
    "GetProcessStatusHandler",
    "ShutdownHandler",
    "create_handlers",
    "dump_logs",
    "select_logs",
]


def create_handlers() -> dict[str, ToolHandler]:
    """按工具名创建全部处理器。"""
    handlers: list[ToolHandler] = [
        GetRecentLogsHandler(),
        SendKeyPressHandler(),
        GetProcessStatusHandler(),
        ShutdownHandler(),
    ]
    return {handler.name: handler for handler in handlers}
