"""MCP Command Proxy Server。

把 CommandRunner 以 MCP 工具和资源的形式暴露出来，并通过 HTTP + SSE 提供服务。

工具:
    getRecentLogs: 获取最近日志（可按类型过滤、限制条数）
    sendKeyPress: 向子进程发送按键
    getProcessStatus: 查询子进程状态
    shutdown: 关闭子进程和服务器

资源:
    logs://recent: 最近 100 条日志（JSON）

HTTP:
    GET  /sse        建立 SSE 会话（每个连接一个 MCP 会话）
    POST /messages/  客户端消息
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable
from typing import Any, Callable

import anyio
from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.sse import SseServerTransport
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Mount, Route

from .config import ProxyOptions
from .handlers import (
    ToolContext,
    ToolError,
    create_handlers,
    dump_logs,
    select_logs,
)
from .runtime import CommandRunner

__all__ = [
    "create_server",
    "create_app",
    "LOGS_RESOURCE_URI",
    "SSE_PATH",
    "MESSAGES_PATH",
]

logger = logging.getLogger(__name__)

LOGS_RESOURCE_URI = "logs://recent"
LOGS_RESOURCE_LIMIT = 100
SSE_PATH = "/sse"
MESSAGES_PATH = "/messages/"


def create_server(
    runner: CommandRunner,
    options: ProxyOptions,
    request_shutdown: Callable[[], None] | None = None,
) -> Server:
    """创建 MCP Server 实例。

    Args:
        runner: 被代理命令的运行器
        options: 代理参数（名称前缀等）
        request_shutdown: shutdown 工具触发的关闭回调（可选）
    """
    server = Server(options.server_name)
    handlers = create_handlers()
    tool_ctx = ToolContext(
        runner=runner,
        options=options,
        request_shutdown=request_shutdown,
    )

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """列出可用工具。"""
        tools = [
            Tool(
                name=handler.name,
                description=handler.description,
                inputSchema=handler.get_input_schema(),
            )
            for handler in handlers.values()
            if handler.name != "shutdown" or request_shutdown is not None
        ]
        logger.debug(f"[MCP] list_tools: {[t.name for t in tools]}")
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        """调用工具。

        ToolError 交给 MCP 框架转换为 isError 结果；其他异常记录后同样以错误返回。
        """
        logger.debug(
            f"[MCP] call_tool: {name} "
            f"{json.dumps(arguments or {}, ensure_ascii=False, default=str)}"
        )

        handler = handlers.get(name)
        if handler is None:
            raise ToolError(f"Unknown tool '{name}'")

        try:
            return await handler.handle(arguments or {}, tool_ctx)

        except ToolError as e:
            logger.info(f"[{options.prefix}] Tool '{name}' failed: {e}")
            raise

        except asyncio.CancelledError:
            logger.info(f"Tool '{name}' cancelled")
            raise

        except Exception as e:
            logger.error(f"Tool '{name}' error: type={type(e).__name__}, msg={e}")
            raise ToolError(f"Tool '{name}' failed: {e}") from e

    @server.list_resources()
    async def list_resources() -> list[Resource]:
        """列出资源。"""
        return [
            Resource(
                uri=AnyUrl(LOGS_RESOURCE_URI),
                name="logs",
                description=f"The {LOGS_RESOURCE_LIMIT} most recent log entries of the proxied command",
                mimeType="application/json",
            )
        ]

    @server.read_resource()
    async def read_resource(uri: AnyUrl) -> Iterable[ReadResourceContents]:
        """读取资源。"""
        if str(uri).rstrip("/") != LOGS_RESOURCE_URI:
            raise ValueError(f"Unknown resource '{uri}'")

        entries = await anyio.to_thread.run_sync(runner.get_logs)
        logs = select_logs(entries, LOGS_RESOURCE_LIMIT)
        return [
            ReadResourceContents(
                content=dump_logs(logs, indent=2),
                mime_type="application/json",
            )
        ]

    return server


def create_app(server: Server, *, prefix: str = "") -> Starlette:
    """创建提供 SSE 传输的 Starlette 应用。

    每个 GET /sse 连接都会运行一个独立的 MCP 会话，共享同一个 Server。
    """
    sse = SseServerTransport(MESSAGES_PATH)
    tag = f"[{prefix}] " if prefix else ""

    async def handle_sse(request: Request) -> Response:
        client = request.client.host if request.client else "unknown"
        logger.info(f"{tag}SSE endpoint connected (client={client})")
        async with sse.connect_sse(
            request.scope,
            request.receive,
            request._send,
        ) as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
        logger.info(f"{tag}SSE session closed (client={client})")
        return Response()

    return Starlette(
        routes=[
            Route(SSE_PATH, endpoint=handle_sse, methods=["GET"]),
            Mount(MESSAGES_PATH, app=sse.handle_post_message),
        ],
    )
