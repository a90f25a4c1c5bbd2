"""Main application entry point."""

import argparse
import json
import asyncio
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from aiohttp import web, web_runner
from dotenv import load_dotenv

from .config.settings import get_settings
from .config.schema import SyncConfig, default_config
from .config.loader import ConfigLoader, ConfigurationError, load_config_from_env
from .utils.logging import setup_logging, get_logger
from .auth.credentials import CredentialError
from .auth.login_flow import LoginFlowV2
from .core.orchestrator import SyncOrchestrator
from .storage.factory import RemoteStorageFactory
from .storage.local import FileSystemVault
from .watcher import VaultWatcher


def load_config(config_path: Optional[str]) -> SyncConfig:
    """Load the sync config from an explicit file or the default locations."""
    if config_path:
        return ConfigLoader().load_from_file(config_path)
    return load_config_from_env()


class CollectivesSyncApp:
    """Long-running sync service for one vault."""

    def __init__(self, vault_root: str, config: SyncConfig):
        """Initialize the application."""
        self.settings = get_settings()
        self.logger = get_logger("CollectivesSync")
        self.running = False
        self.started_at: Optional[datetime] = None
        self.web_runner: Optional[web_runner.AppRunner] = None

        self.vault = FileSystemVault(vault_root)
        self.orchestrator = SyncOrchestrator(config, self.vault, RemoteStorageFactory(), settings=self.settings)
        self.watcher = VaultWatcher(self.vault, self.orchestrator)

        self.orchestrator.status_listeners.append(self._on_status)
        self.orchestrator.notice_listeners.append(self._on_notice)

    def _on_status(self, state, text: str) -> None:
        self.logger.info("Status changed", state=state.value, status_text=text)

    def _on_notice(self, message: str) -> None:
        print(message, file=sys.stderr)

    async def startup(self):
        """Application startup."""
        self.logger.info(
            "Starting Collectives Sync",
            version=self.settings.version,
            environment=self.settings.environment,
            vault_root=str(self.vault.vault_root)
        )

        if self.settings.status_server.enabled:
            await self._setup_web_server()

        await self.orchestrator.start()
        # on_file_changed checks sync_on_save on every event
        self.watcher.start()

        self.running = True
        self.started_at = datetime.now(timezone.utc)
        self.logger.info("Collectives Sync started successfully")

    async def shutdown(self):
        """Application shutdown."""
        self.logger.info("Shutting down Collectives Sync")
        self.running = False

        self.watcher.stop()
        self.orchestrator.cancel()
        await self.orchestrator.stop()
        await self._stop_web_server()

        self.logger.info("Collectives Sync stopped")

    async def run(self):
        """Run until a shutdown signal arrives."""
        await self.startup()

        try:
            while self.running:
                await asyncio.sleep(1)
        finally:
            await self.shutdown()

    async def _setup_web_server(self):
        """Set up the status and trigger endpoints."""
        web_app = web.Application()

        web_app.router.add_get('/health', self._health_handler)
        web_app.router.add_get('/status', self._status_handler)
        web_app.router.add_post('/sync', self._sync_handler)
        web_app.router.add_post('/changed', self._changed_handler)

        self.web_runner = web_runner.AppRunner(web_app)
        await self.web_runner.setup()

        host = self.settings.status_server.host
        port = self.settings.status_server.port
        site = web_runner.TCPSite(self.web_runner, host, port)
        await site.start()

        self.logger.info(f"Status server started on http://{host}:{port}")

    async def _stop_web_server(self):
        if self.web_runner:
            await self.web_runner.cleanup()
            self.web_runner = None
            self.logger.info("Status server stopped")

    async def _health_handler(self, request):
        """Health check endpoint."""
        uptime = (datetime.now(timezone.utc) - self.started_at).total_seconds() if self.started_at else 0
        health_data = {
            "status": "healthy" if self.running else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": self.settings.version,
            "environment": self.settings.environment,
            "uptime_seconds": int(uptime)
        }

        status_code = 200 if self.running else 503
        return web.json_response(health_data, status=status_code)

    async def _status_handler(self, request):
        """Detailed status endpoint."""
        status_data = {
            "application": {
                "name": self.settings.name,
                "version": self.settings.version,
                "running": self.running,
                "timestamp": datetime.now(timezone.utc).isoformat()
            },
            "sync": self.orchestrator.get_status(),
            "watcher": "running" if self.watcher.running else "stopped"
        }

        return web.json_response(status_data, dumps=lambda data: json.dumps(data, default=str))

    async def _sync_handler(self, request):
        """Run a pass, or join the one already queued."""
        report = await self.orchestrator.run_once("http")
        if report is None:
            return web.json_response({"status": self.orchestrator.status_text}, status=503)
        return web.json_response(report.summary(), status=200 if report.success else 500)

    async def _changed_handler(self, request):
        """Report a saved vault file, as the watcher would."""
        try:
            body = await request.json()
            path = body["path"]
        except (ValueError, KeyError, TypeError):
            return web.json_response({"error": "Expected JSON body with a 'path'"}, status=400)

        result = await self.orchestrator.on_file_changed(path)
        if result is None:
            return web.json_response({"path": path, "action": "ignored"})
        return web.json_response({
            "path": result.path,
            "action": result.action.value,
            "remote_path": result.remote_path,
            "error": result.error
        })


def setup_signal_handlers(app: CollectivesSyncApp):
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(signum, frame):
        app.logger.info(f"Received signal {signum}")
        app.running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def run_service(args) -> int:
    config = load_config(args.config)
    app = CollectivesSyncApp(args.vault, config)
    setup_signal_handlers(app)
    await app.run()
    return 0


async def run_single_sync(args) -> int:
    logger = get_logger("sync")
    config = load_config(args.config)
    orchestrator = SyncOrchestrator(config, FileSystemVault(args.vault), RemoteStorageFactory())

    try:
        if not await orchestrator.connect():
            print("Not connected to Nextcloud. Please check your settings.", file=sys.stderr)
            return 1

        report = await orchestrator.run_once("cli")
    finally:
        await orchestrator.stop()

    if report is None:
        return 1

    logger.info("Sync finished", **report.summary())
    for path in report.failed_paths:
        print(f"failed: {path}", file=sys.stderr)
    return 0 if report.success and not report.files_failed else 1


async def run_login(args) -> int:
    settings = get_settings()
    config_path = Path(args.config)
    loader = ConfigLoader()

    config = loader.load_from_file(config_path) if config_path.exists() else default_config()
    nextcloud_url = (args.url or config.nextcloud_url).rstrip('/')
    if not nextcloud_url:
        print("A Nextcloud URL is required (--url)", file=sys.stderr)
        return 2

    flow = LoginFlowV2(
        nextcloud_url,
        poll_interval=settings.login_flow.poll_interval_seconds,
        max_attempts=settings.login_flow.max_attempts,
        on_status=lambda message: print(message, file=sys.stderr)
    )
    print(f"Opening {nextcloud_url} for login...", file=sys.stderr)

    try:
        credentials = await flow.get_credentials()
    except CredentialError as e:
        print(str(e), file=sys.stderr)
        return 1

    config.nextcloud_url = credentials.url
    config.set_password_credentials(credentials.username, credentials.secret)
    loader.save_to_file(config, config_path, format='json' if config_path.suffix == '.json' else 'yaml')
    print(f"Saved credentials for {credentials.username} to {config_path}", file=sys.stderr)
    return 0


async def run_test_connection(args) -> int:
    config = load_config(args.config)
    orchestrator = SyncOrchestrator(config, FileSystemVault(args.vault), RemoteStorageFactory())
    orchestrator.notice_listeners.append(lambda message: print(message, file=sys.stderr))

    try:
        await orchestrator.connect()
        healthy = await orchestrator.test_connection()
    finally:
        await orchestrator.stop()

    return 0 if healthy else 1


COMMANDS = {
    "run": run_service,
    "sync": run_single_sync,
    "login": run_login,
    "test-connection": run_test_connection,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="collectives-sync",
        description="Sync a local markdown vault with Nextcloud Collectives"
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("run", "Run the sync service with timers and the file watcher"),
        ("sync", "Run one full sync pass and exit"),
        ("test-connection", "Check that the configured account is reachable"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--vault", default=".", help="Vault root directory")
        sub.add_argument("--config", default=None, help="YAML or JSON configuration file")

    login = subparsers.add_parser("login", help="Log in through the browser and store an app password")
    login.add_argument("--url", default=None, help="Nextcloud base URL")
    login.add_argument("--config", default="collectives.yaml", help="Configuration file to update")

    return parser


def cli(argv=None) -> int:
    """Console script entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    setup_logging(log_level=args.log_level)
    logger = get_logger("main")
    logger.info("Initializing Collectives Sync", command=args.command)

    try:
        return asyncio.run(COMMANDS[args.command](args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0


if __name__ == "__main__":
    sys.exit(cli())
