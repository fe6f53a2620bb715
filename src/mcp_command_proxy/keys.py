"""按键名映射。

把 MCP 客户端发送的符号按键名（enter、tab、方向键等）转换为终端控制字符。
未知的名字原样透传，因此也可以直接发送任意文本。
"""

from __future__ import annotations

__all__ = ["KEY_MAP", "CTRL_C", "resolve_key"]

CTRL_C = "\x03"

KEY_MAP: dict[str, str] = {
    "enter": "\r",
    "return": "\r",
    "space": " ",
    "tab": "\t",
    "escape": "\x1b",
    "esc": "\x1b",
    "backspace": "\x7f",
    "up": "\x1b[A",
    "down": "\x1b[B",
    "right": "\x1b[C",
    "left": "\x1b[D",
    "arrowup": "\x1b[A",
    "arrowdown": "\x1b[B",
    "arrowright": "\x1b[C",
    "arrowleft": "\x1b[D",
}


def resolve_key(key: str) -> str:
    """把按键名转换为要写入终端的字符串（大小写不敏感）。"""
    return KEY_MAP.get(key.lower(), key)
