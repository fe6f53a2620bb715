"""MCP Command Proxy 应用入口。

包含服务器生命周期管理和主入口点。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Iterator, Sequence

import anyio
import uvicorn

from .cli import parse_args
from .config import Config, ProxyOptions, get_config
from .runtime import CommandRunner, LogEntry, RunnerEvent
from .server import MESSAGES_PATH, SSE_PATH, create_app, create_server
from .signal_manager import SignalManager
from .stdin_forwarder import StdinForwarder

__all__ = ["run_server", "stop_runner", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
KILL_TIMEOUT = 1.0
# Open SSE streams never finish on their own; cancel them after this long
HTTP_SHUTDOWN_TIMEOUT = 1.0


class ProxyUvicornServer(uvicorn.Server):
    """uvicorn 服务器，信号处理交给 SignalManager。"""

    def install_signal_handlers(self) -> None:
        # uvicorn < 0.29
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        # uvicorn >= 0.29
        yield


def attach_console_echo(runner: CommandRunner, prefix: str, echo_output: bool) -> None:
    """把子进程输出回显到本地终端，系统消息写入日志。"""

    def on_log(entry: LogEntry) -> None:
        if entry.type == "system":
            logger.info(f"[{prefix}] {entry.content}")
            return
        if not echo_output:
            return
        stream = sys.stderr if entry.type == "stderr" else sys.stdout
        stream.write(entry.content)
        stream.flush()

    def on_exit(code: int | None, signal_name: str | None) -> None:
        logger.info(f"[{prefix}] Command exited with code {code}")

    def on_error(error: BaseException) -> None:
        logger.error(f"[{prefix}] Command error: {error}")

    runner.on(RunnerEvent.LOG, on_log)
    runner.on(RunnerEvent.EXIT, on_exit)
    runner.on(RunnerEvent.ERROR, on_error)


async def stop_runner(
    runner: CommandRunner,
    term_timeout: float,
    kill_timeout: float = KILL_TIMEOUT,
) -> bool:
    """停止子进程：SIGTERM -> 等待 -> SIGKILL -> 等待。

    Returns:
        子进程是否已经退出（或本来就没有运行）
    """
    if not runner.stop(signal.SIGTERM):
        return runner.wait(0)

    if await anyio.to_thread.run_sync(runner.wait, term_timeout):
        return True

    logger.warning(f"Command did not exit within {term_timeout}s, sending SIGKILL")
    runner.stop(signal.SIGKILL)
    if await anyio.to_thread.run_sync(runner.wait, kill_timeout):
        return True

    logger.warning(f"Command pid={runner.pid} did not exit after SIGKILL")
    return False


async def run_server(options: ProxyOptions, config: Config | None = None) -> None:
    """运行 MCP Command Proxy。

    使用并发任务架构：
    - server_task: 运行 uvicorn（HTTP + SSE）
    - shutdown_watcher: 等待关闭请求，停止子进程后让 uvicorn 退出
    """
    config = config or get_config()
    logger.info(f"Starting MCP Command Proxy: {options.server_name} ({config})")

    runner = CommandRunner(
        options.command,
        options.args,
        cwd=options.cwd,
        env=options.child_env(),
        log_buffer_size=options.buffer_size,
    )
    attach_console_echo(runner, options.prefix, config.echo_output)

    signal_manager = SignalManager(runner)
    forwarder: StdinForwarder | None = None
    server_task: asyncio.Task | None = None
    shutdown_watcher: asyncio.Task | None = None

    mcp = create_server(runner, options, request_shutdown=signal_manager.request_graceful_shutdown)
    app = create_app(mcp, prefix=options.prefix)
    http_server = ProxyUvicornServer(
        uvicorn.Config(
            app,
            host=options.host,
            port=options.port,
            log_config=None,
            log_level="warning",
            timeout_graceful_shutdown=HTTP_SHUTDOWN_TIMEOUT,
        )
    )

    async def _watch_shutdown() -> None:
        """等待关闭请求，停止子进程后通知 uvicorn 退出。"""
        await signal_manager.wait_for_shutdown()
        logger.info(f"[{options.prefix}] Shutting down MCP Command Proxy...")
        if forwarder:
            forwarder.stop()
        if not signal_manager.is_force_exit:
            await stop_runner(runner, config.stop_timeout)
        else:
            runner.stop(signal.SIGKILL)
        http_server.should_exit = True
        if signal_manager.is_force_exit:
            http_server.force_exit = True

    try:
        await signal_manager.start()

        if config.forward_stdin:
            forwarder = StdinForwarder(
                runner,
                on_interrupt=signal_manager.request_graceful_shutdown,
                prefix=options.prefix,
            )
            if not forwarder.start():
                forwarder = None

        runner.start()

        base_url = f"http://{options.host}:{options.port}"
        logger.info(f"[{options.prefix}] MCP server listening on port {options.port}")
        logger.info(f"[{options.prefix}] SSE endpoint: {base_url}{SSE_PATH}")
        logger.info(f"[{options.prefix}] Messages endpoint: {base_url}{MESSAGES_PATH}")
        logger.info(f"[{options.prefix}] MCP server started with command: {options.command}")

        server_task = asyncio.create_task(http_server.serve(), name="http-server")
        shutdown_watcher = asyncio.create_task(_watch_shutdown(), name="shutdown-watcher")

        try:
            await server_task
        except asyncio.CancelledError:
            logger.info("Server task cancelled")

    except asyncio.CancelledError:
        logger.info("run_server: asyncio.CancelledError caught")
        raise

    finally:
        if shutdown_watcher and not shutdown_watcher.done():
            shutdown_watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await shutdown_watcher

        if forwarder:
            forwarder.stop()

        if runner.is_running:
            await stop_runner(runner, config.stop_timeout)

        await signal_manager.stop()
        logger.info(f"[{options.prefix}] MCP server stopped")

        if signal_manager.is_force_exit:
            logger.warning("Force exit requested, terminating with exit code 130")
            sys.exit(130)


def configure_logging(config: Config) -> None:
    """配置日志输出。

    默认输出到 stderr；CMP_LOG_DEBUG 模式输出到临时文件并开启 DEBUG。
    """
    handler: logging.Handler
    if config.log_debug and config.log_file:
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.INFO
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # 第三方库（uvicorn、mcp）保持 WARNING，减少噪音
    logging.basicConfig(level=logging.WARNING, handlers=[handler], force=True)
    logging.getLogger("mcp_command_proxy").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> None:
    """主入口点。"""
    options = parse_args(argv)
    config = get_config()
    configure_logging(config)

    if config.log_debug and config.log_file:
        print(f"Debug log: {config.log_file}", file=sys.stderr)

    try:
        asyncio.run(run_server(options, config))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.error(f"Error starting MCP Command Proxy: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
