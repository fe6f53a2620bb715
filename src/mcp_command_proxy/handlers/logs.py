"""日志查询工具处理器。"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

import anyio
from mcp.types import TextContent
from pydantic import BaseModel, ConfigDict, Field

from .base import ToolContext, ToolHandler
from ..runtime import LogEntry

__all__ = [
    "GetRecentLogsArguments",
    "GetRecentLogsHandler",
    "DEFAULT_LOG_LIMIT",
    "select_logs",
    "dump_logs",
]

logger = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 100
ALL_LOG_TYPES: list[Literal["stdout", "stderr", "system"]] = ["stdout", "stderr", "system"]


class GetRecentLogsArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    limit: int = Field(
        default=DEFAULT_LOG_LIMIT,
        ge=1,
        description="Maximum number of most recent entries to return",
    )
    types: list[Literal["stdout", "stderr", "system"]] = Field(
        default_factory=lambda: list(ALL_LOG_TYPES),
        description="Entry types to include",
    )


def select_logs(
    entries: list[LogEntry],
    limit: int = DEFAULT_LOG_LIMIT,
    types: list[str] | None = None,
) -> list[LogEntry]:
    """按类型过滤，再保留最近的 limit 条（保持时间顺序）。"""
    if types is not None:
        wanted = set(types)
        entries = [entry for entry in entries if entry.type in wanted]
    return entries[-limit:] if limit > 0 else []


def dump_logs(entries: list[LogEntry], indent: int | None = None) -> str:
    """序列化为 JSON 数组：[{"timestamp", "content", "type"}, ...]。"""
    return json.dumps(
        [entry.model_dump() for entry in entries],
        ensure_ascii=False,
        indent=indent,
    )


class GetRecentLogsHandler(ToolHandler):
    """返回最近的日志条目。"""

    arguments_model = GetRecentLogsArguments

    @property
    def name(self) -> str:
        return "getRecentLogs"

    @property
    def description(self) -> str:
        return (
            "Get recent log entries captured from the proxied command. "
            "Entries are returned oldest first as a JSON array of "
            "{timestamp, content, type}; content is raw terminal output and may "
            "contain ANSI escape sequences. Filter with 'types' and cap with 'limit'."
        )

    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        params = self.parse(arguments)
        entries = await anyio.to_thread.run_sync(ctx.runner.get_logs)
        logs = select_logs(entries, params.limit, params.types)
        logger.debug(f"getRecentLogs: limit={params.limit} types={params.types} -> {len(logs)}")
        return [TextContent(type="text", text=dump_logs(logs))]
