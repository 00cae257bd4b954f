"""blockmove main daemon."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

from blockmove import __version__
from blockmove.config import BlockmoveConfig, load_config, resolve_config_path
from blockmove.core.animation import rng_factory_for
from blockmove.core.errors import BlockmoveError
from blockmove.core.render_scheduler import RenderScheduler
from blockmove.core.session_registry import SessionRegistry
from blockmove.core.sprite_field import SpriteSet, load_sprite_set
from blockmove.core.task_registry import TaskRegistry
from blockmove.logging_config import setup_logging
from blockmove.transport.ssh_server import SpriteSSHServer, load_host_key

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 5.0


class BlockmoveDaemon:
    """Owns the registry, the render loop and the SSH listener."""

    def __init__(self, config: BlockmoveConfig) -> None:
        self.config = config
        self.shutdown_event = asyncio.Event()
        self.tasks = TaskRegistry()
        self.registry = SessionRegistry(
            rng_factory=rng_factory_for(config.session.seed),
            default_size=(config.render.default_width, config.render.default_height),
        )
        self.scheduler: Optional[RenderScheduler] = None
        self.server: Optional[SpriteSSHServer] = None

    async def start(self) -> None:
        """Load startup assets, then start rendering and listening.

        Raises:
            SpriteLoadError: A sprite image is missing or undecodable.
            HostKeyError: The host key is not configured or unreadable.
        """
        sprites = load_sprite_set(self.config.sprites.calm_path, self.config.sprites.alarmed_path)
        host_key = load_host_key(self.config.server.host_key_path)

        self.scheduler = RenderScheduler(self.registry, sprites, self.config.render.frame_interval_ms / 1000)
        self.server = SpriteSSHServer(
            self.registry,
            self.tasks,
            host_key,
            config=self.config.server,
            quit_key=self.config.quit_byte,
            queue_depth=self.config.render.queue_depth,
        )
        self.scheduler.start()
        await self.server.start()

    async def stop(self) -> None:
        """Stop listening, then reset and close every client's session."""
        if self.server is not None:
            await self.server.stop()
        if self.scheduler is not None:
            await self.scheduler.stop()
        await self.tasks.shutdown(timeout=SHUTDOWN_TIMEOUT)
        # Sessions whose handler did not close in time
        await self.registry.close_all()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="blockmove",
        description="Serve a bouncing-sprite terminal animation over SSH.",
    )
    parser.add_argument("--config", help="Path to blockmove.yml (default: $BLOCKMOVE_CONFIG or ./blockmove.yml)")
    parser.add_argument("--host", help="Listen address (overrides server.host)")
    parser.add_argument("--port", type=int, help="Listen port (overrides server.port)")
    parser.add_argument("--log-level", help="Log level (default: $BLOCKMOVE_LOG_LEVEL or INFO)")
    parser.add_argument("--local", action="store_true", help="Animate in this terminal instead of serving SSH")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def apply_overrides(config: BlockmoveConfig, args: argparse.Namespace) -> BlockmoveConfig:
    if args.host:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    return config


async def _serve(config: BlockmoveConfig) -> int:
    daemon = BlockmoveDaemon(config)
    loop = asyncio.get_running_loop()

    def request_shutdown(sig: signal.Signals) -> None:
        logger.info("Received %s signal...", sig.name)
        daemon.shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, request_shutdown, sig)

    try:
        await daemon.start()
        await daemon.shutdown_event.wait()
    except BlockmoveError as e:
        logger.error("Startup failed: %s", e)
        return 1
    finally:
        try:
            await daemon.stop()
        except Exception as e:  # pylint: disable=broad-exception-caught  # shutdown must run to completion
            logger.error("Error during daemon stop: %s", e, exc_info=True)
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
    return 0


async def _preview(config: BlockmoveConfig) -> int:
    from blockmove.local_preview import run_local_preview

    try:
        sprites: SpriteSet = load_sprite_set(config.sprites.calm_path, config.sprites.alarmed_path)
    except BlockmoveError as e:
        logger.error("Startup failed: %s", e)
        return 1
    await run_local_preview(config, sprites)
    return 0


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(level=args.log_level)

    try:
        config = apply_overrides(load_config(resolve_config_path(args.config)), args)
    except BlockmoveError as e:
        logger.error("Configuration error: %s", e)
        return 1

    if args.local:
        return await _preview(config)
    return await _serve(config)


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
