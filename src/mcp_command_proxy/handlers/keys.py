"""按键输入工具处理器。"""

from __future__ import annotations

import logging
from typing import Any

import anyio
from mcp.types import TextContent
from pydantic import BaseModel, ConfigDict, Field

from .base import ToolContext, ToolError, ToolHandler
from ..keys import KEY_MAP, resolve_key
from ..runtime import ProcessStatus

__all__ = ["SendKeyPressArguments", "SendKeyPressHandler"]

logger = logging.getLogger(__name__)


class SendKeyPressArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str = Field(
        min_length=1,
        description=(
            "Key name (" + ", ".join(sorted(KEY_MAP)) + ") or literal text to send"
        ),
    )


class SendKeyPressHandler(ToolHandler):
    """向子进程终端发送一次按键或一段文本。"""

    arguments_model = SendKeyPressArguments

    @property
    def name(self) -> str:
        return "sendKeyPress"

    @property
    def description(self) -> str:
        return (
            "Send a key press or text to the running command's terminal. "
            "Named keys (enter, space, tab, escape, backspace, up, down, left, right) "
            "are converted to their control characters; anything else is sent verbatim."
        )

    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        params = self.parse(arguments)

        status = await anyio.to_thread.run_sync(ctx.runner.get_status)
        if status != ProcessStatus.RUNNING:
            raise ToolError("Command is not running")

        data = resolve_key(params.key)
        if not await anyio.to_thread.run_sync(ctx.runner.write, data):
            raise ToolError("Failed to send key; see system log entries for details")

        logger.debug(f"sendKeyPress: key={params.key!r} -> {data!r}")
        return [TextContent(type="text", text="Key sent successfully")]
