"""进程状态与关闭工具处理器。"""

from __future__ import annotations

import json
import logging
from typing import Any

import anyio
from mcp.types import TextContent
from pydantic import BaseModel, ConfigDict

from .base import ToolContext, ToolError, ToolHandler

__all__ = [
    "EmptyArguments",
    "GetProcessStatusHandler",
    "ShutdownHandler",
]

logger = logging.getLogger(__name__)


class EmptyArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GetProcessStatusHandler(ToolHandler):
    """查询子进程状态。"""

    arguments_model = EmptyArguments

    @property
    def name(self) -> str:
        return "getProcessStatus"

    @property
    def description(self) -> str:
        return 'Get the status of the proxied command: {"status": "running" | "stopped" | "error"}.'

    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        self.parse(arguments)
        status = await anyio.to_thread.run_sync(ctx.runner.get_status)
        return [TextContent(type="text", text=json.dumps({"status": status.value}))]


class ShutdownHandler(ToolHandler):
    """优雅关闭子进程和 MCP 服务器。

    关闭是异步进行的：工具先返回，随后由应用生命周期完成清理。
    """

    arguments_model = EmptyArguments

    @property
    def name(self) -> str:
        return "shutdown"

    @property
    def description(self) -> str:
        return (
            "Stop the proxied command and shut down this MCP server. "
            "The response is returned before shutdown completes; the connection "
            "closes shortly afterwards."
        )

    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        self.parse(arguments)
        if ctx.request_shutdown is None:
            raise ToolError("Shutdown is not available in this server")

        logger.info(f"[{ctx.options.prefix}] Shutdown requested by MCP client")
        ctx.request_shutdown()
        return [TextContent(type="text", text="Shutdown initiated")]
