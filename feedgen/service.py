import asyncio
import signal
from typing import Optional

import uvicorn
from dotenv import load_dotenv

from .config import AppContext, Settings
from .db import create_database
from .firehose import firehose_stream_factory
from .logging_setup import configure_logging, get_logger
from .server import create_app
from .subscription import FirehoseSubscription


log = get_logger(__name__)


class Service:
    """Feed generator lifecycle: storage, firehose subscription and HTTP server.

    Shutdown order matters: the subscription is stopped first so its final
    checkpoint lands while the database is still open.
    """

    def __init__(self, settings: Settings, shutdown_timeout: float = 10.0) -> None:
        log.info(
            "service_start",
            service_did=settings.service_did,
            publisher_did=settings.publisher_did,
            firehose=settings.subscription_endpoint,
            community_members=len(settings.community_members),
        )
        self.settings = settings
        self.shutdown_timeout = shutdown_timeout

        self.db = create_database(settings.database_url)
        self.ctx = AppContext(db=self.db, members=settings.members(), settings=settings)

        self.subscription: Optional[FirehoseSubscription] = None
        if settings.enable_subscription:
            self.subscription = FirehoseSubscription(
                db=self.db,
                service=settings.subscription_endpoint,
                open_stream=firehose_stream_factory(
                    settings.subscription_endpoint, settings.stream_idle_timeout
                ),
                members=self.ctx.members,
                reconnect_delay=settings.subscription_reconnect_delay,
                cursor_save_interval=settings.cursor_save_interval,
            )

        # Web server
        app = create_app(self.ctx, self.subscription)
        config = uvicorn.Config(
            app,
            host=settings.listenhost,
            port=settings.port,
            log_level=settings.log_level.lower(),
            access_log=False,
        )
        self.server = uvicorn.Server(config)

        # Lifecycle primitives
        self.stop_event = asyncio.Event()
        self._subscription_task: Optional[asyncio.Task] = None
        self._server_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Open storage, then start the firehose and the web server."""
        await self.db.connect()
        await self.db.migrate()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal)

        if self.subscription is not None:
            self._subscription_task = asyncio.create_task(self.subscription.run())
        else:
            log.info("firehose_subscription_disabled")

        self._server_task = asyncio.create_task(self.server.serve())
        log.info("server_listening", host=self.settings.listenhost, port=self.settings.port)

    def _handle_signal(self) -> None:
        self.stop_event.set()

    async def shutdown(self) -> None:
        if self.subscription is not None and self._subscription_task is not None:
            self.subscription.stop()
            try:
                await asyncio.wait_for(self._subscription_task, timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                log.warning("firehose_stop_timeout", timeout=self.shutdown_timeout)

        if self._server_task is not None:
            self.server.should_exit = True
            await self._server_task

        await self.db.close()
        log.info("service_stop")

    async def run(self) -> None:
        """Start the service and wait for a stop signal or the server exiting."""
        await self.start()
        stop_wait = asyncio.create_task(self.stop_event.wait())
        await asyncio.wait({stop_wait, self._server_task}, return_when=asyncio.FIRST_COMPLETED)
        stop_wait.cancel()
        await self.shutdown()


def main() -> None:
    # load .env before reading settings
    load_dotenv()
    settings = Settings()
    configure_logging(settings.log_level, settings.log_format)
    asyncio.run(Service(settings).run())
