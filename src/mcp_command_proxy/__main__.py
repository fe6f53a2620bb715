"""MCP Command Proxy 入口点。

支持: python -m mcp_command_proxy
"""

from .app import main

if __name__ == "__main__":
    main()
