"""
Ratings Pipeline - Hauptanwendung

Zentraler Einstiegspunkt für den Service-Prozess: API Server und der tägliche
Aufräum-Scheduler. Crawls laufen separat über ``ratings-pipeline ingest``.
"""

import asyncio
import logging
import signal
import sys

import uvicorn

from ratings_pipeline.api.main import create_fastapi_app
from ratings_pipeline.apps import RatingsDataApp
from ratings_pipeline.common.logging_utils import configure_logging
from ratings_pipeline.core.config import Settings


class RatingsPipeline:
    """Hauptklasse für den Ratings Service"""

    def __init__(self, settings: Settings = None):
        self.settings = settings or Settings()
        configure_logging(service="ratings-pipeline", level=self.settings.log_level)
        self.logger = logging.getLogger("ratings_pipeline")

        self.data_app: RatingsDataApp | None = None
        self.fastapi_app = None

        # Tasks
        self.background_tasks = []
        self.shutdown_event = asyncio.Event()

    def _setup_signal_handlers(self):
        """Konfiguriert Signal Handlers für graceful shutdown"""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.shutdown_event.set)
            except NotImplementedError:
                # Windows: KeyboardInterrupt ends asyncio.run instead
                pass

    def initialize(self):
        """Initialisiert alle Komponenten"""
        try:
            self.logger.info("Initializing Ratings Pipeline...")
            self.data_app = RatingsDataApp(self.settings).initialize()

            if self.settings.run_mode != "scheduler_only":
                # the pipeline owns the scheduler; the API shares store, metrics and registry
                self.fastapi_app = create_fastapi_app(
                    self.settings,
                    self.data_app.store,
                    metrics=self.data_app.metrics,
                    task_registry=self.data_app.registry,
                )
                self.logger.info("FastAPI App initialized")

            self.logger.info("Ratings Pipeline initialization completed")
        except Exception as e:
            self.logger.error(f"Failed to initialize Ratings Pipeline: {e}")
            raise

    def start_background_tasks(self):
        """Startet Background Tasks"""
        if self.settings.run_mode != "api_only" and self.settings.enable_scheduled_cleanup:
            task = asyncio.create_task(self.data_app.run_scheduled_tasks())
            self.background_tasks.append(task)
            self.logger.info("Cleanup scheduler started")

    async def run_api_server(self):
        """Startet den API Server"""
        config = uvicorn.Config(
            self.fastapi_app,
            host=self.settings.api_host,
            port=self.settings.api_port,
            log_level=self.settings.log_level.lower(),
            access_log=False,
        )
        server = uvicorn.Server(config)
        # signals are handled by the pipeline
        server.install_signal_handlers = lambda: None

        self.logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
        server_task = asyncio.create_task(server.serve())

        await self.shutdown_event.wait()

        server.should_exit = True
        await server_task

    async def run(self):
        """Hauptausführung der Pipeline"""
        try:
            self._setup_signal_handlers()
            self.initialize()
            self.start_background_tasks()

            if self.fastapi_app is not None:
                await self.run_api_server()
            else:
                await self.shutdown_event.wait()
        except Exception as e:
            self.logger.error(f"Pipeline execution failed: {e}")
            raise
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Graceful Shutdown"""
        self.logger.info("Initiating graceful shutdown...")
        self.shutdown_event.set()
        if self.data_app:
            self.data_app.stop()

        for task in self.background_tasks:
            if not task.done():
                task.cancel()
        if self.background_tasks:
            await asyncio.gather(*self.background_tasks, return_exceptions=True)

        if self.data_app:
            self.data_app.close()
        self.logger.info("Graceful shutdown completed")


async def main():
    """Haupteinstiegspunkt"""
    try:
        pipeline = RatingsPipeline(Settings())
        await pipeline.run()
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
    except Exception as e:
        logging.error(f"Pipeline failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
