"""Main entry point - runs the API server."""

import asyncio
import logging
import signal

import uvicorn

from swapagent.api.app import create_app
from swapagent.config import get_settings

logger = logging.getLogger(__name__)


class Application:
    """Runs the HTTP API until a shutdown signal arrives."""

    def __init__(self):
        self.settings = get_settings()
        self.server = None
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start all services."""
        # Configure logging
        log_level = logging.DEBUG if self.settings.debug else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting SwapAgent...")
        logger.info(f"Environment: {self.settings.environment}")
        logger.info(f"Chain: {self.settings.chain_name} via {self.settings.get_safe_dict()['chain']['rpc']}")

        if not self.settings.key_salt:
            logger.warning("KEY_SALT not set - wallet keys cannot be decrypted")

        api_task = asyncio.create_task(self._run_api())
        logger.info("API task created")

        # Wait for shutdown signal or server exit
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())
        await asyncio.wait({api_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)

        if self.server is not None:
            self.server.should_exit = True
        shutdown_task.cancel()
        await asyncio.gather(api_task, shutdown_task, return_exceptions=True)
        logger.info("Shutdown complete")

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            app = create_app(self.settings)
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            self.server = uvicorn.Server(config)
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await self.server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error(f"API error: {e}")
            raise

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    app = Application()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
