"""Demo HTTP service whose metrics the pusher ships, using FastAPI."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from rwpusher.metrics import ServiceMetrics

logger = logging.getLogger(__name__)


class DemoService:
    """FastAPI app exposing the example routes and the /metrics endpoint."""

    def __init__(self, metrics: ServiceMetrics):
        """
        Initialize the demo service.

        Args:
            metrics: Instruments registered on the registry being pushed
        """
        self.metrics = metrics
        self.app = FastAPI(title="Remote Write Pusher Demo Service")

        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/")
        async def index(request: Request):
            """Greeting endpoint, counted in http_requests_total."""
            with self.metrics.hello_world.labels(reason="test").time():
                self.metrics.record_request(200, request.method)
                return PlainTextResponse("Hello from example application.")

        @self.app.get("/err")
        async def not_found(request: Request):
            """Always answers 404, counted in http_requests_total."""
            self.metrics.record_request(404, request.method)
            return Response(status_code=404)

        @self.app.get("/alert/set")
        async def set_alert():
            """Raise the alert gauge."""
            self.metrics.set_alert(1)
            logger.info("Alert set")
            return PlainTextResponse("Alert set.")

        @self.app.get("/alert/unset")
        async def unset_alert():
            """Clear the alert gauge."""
            self.metrics.set_alert(0)
            logger.info("Alert unset")
            return PlainTextResponse("Alert unset.")

        @self.app.get("/metrics")
        async def metrics():
            """Text exposition of the service registry."""
            return Response(
                content=generate_latest(self.metrics.registry),
                media_type=CONTENT_TYPE_LATEST
            )

    def run(self, host: str = "0.0.0.0", port: int = 8080):
        """Run the API server."""
        import uvicorn
        uvicorn.run(self.app, host=host, port=port, log_level="info")
