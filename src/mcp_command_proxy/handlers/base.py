"""Tool Handler 基础抽象。

定义工具处理器的协议、上下文和工具级错误。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar

from mcp.types import TextContent
from pydantic import BaseModel, ValidationError

if TYPE_CHECKING:
    from ..config import ProxyOptions
    from ..runtime import CommandRunner

__all__ = [
    "ToolContext",
    "ToolError",
    "ToolHandler",
    "format_validation_error",
]


class ToolError(Exception):
    """工具调用失败。

    MCP server 会把它转换为 isError=True 的工具结果返回给客户端。
    """


@dataclass
class ToolContext:
    """工具执行上下文。

    封装工具执行所需的依赖，避免在函数间传递大量参数。
    """

    runner: "CommandRunner"
    options: "ProxyOptions"
    request_shutdown: Callable[[], None] | None = None


def format_validation_error(error: ValidationError) -> str:
    """把 pydantic 校验错误压缩为一行可读消息。"""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "arguments"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "Invalid arguments: " + "; ".join(parts)


class ToolHandler(ABC):
    """工具处理器协议。

    子类通过 ``arguments_model`` 声明参数模型，schema 与校验都由它生成。
    """

    arguments_model: ClassVar[type[BaseModel]]

    @property
    @abstractmethod
    def name(self) -> str:
        """工具名称。"""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """工具描述。"""
        ...

    def get_input_schema(self) -> dict[str, Any]:
        """获取输入参数 schema。"""
        schema = self.arguments_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema

    def parse(self, arguments: dict[str, Any] | None) -> BaseModel:
        """校验并解析参数。

        Raises:
            ToolError: 参数不合法
        """
        try:
            return self.arguments_model.model_validate(arguments or {})
        except ValidationError as e:
            raise ToolError(format_validation_error(e)) from e

    @abstractmethod
    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        """处理工具调用。

        Args:
            arguments: 工具参数
            ctx: 执行上下文

        Returns:
            TextContent 列表

        Raises:
            ToolError: 调用失败
        """
        ...
