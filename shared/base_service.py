"""
Base service class for the Cross-Language Validation service.
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import time
import os

from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import ServiceError, ValidationServiceException


class BaseService:
    """FastAPI skeleton shared by validation services.

    Subclasses add their own routes after ``super().__init__`` and may
    extend ``_health_details`` with whatever state they want reported on
    ``/health``.
    """

    # Client mistakes map to 400; anything the service cannot serve maps to 503.
    status_codes: Dict[type, int] = {ServiceError: 503}

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)

        configure_logging(service_name, self.config.log_level, json_logs=self.config.env != "local")
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        self.app = FastAPI(
            title=f"{service_name.title()} Service",
            description=f"Cross-Language Validation - {service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
        )
        self._setup_middleware()
        self._setup_routes()

    def _setup_middleware(self):
        """Set up CORS and request bookkeeping."""

        # Browser clients evaluate the same rules and call the service cross-origin
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def track_request(request: Request, call_next):
            start_time = time.time()
            request_id = set_request_id(request.headers.get("X-Request-ID"))

            try:
                response = await call_next(request)
            finally:
                clear_context()

            duration = time.time() - start_time
            # Label by route template; entity types and property keys are unbounded
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)

            self.metrics.record_http_request(
                method=request.method,
                endpoint=endpoint,
                status_code=response.status_code,
                duration=duration
            )
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
                request_id=request_id
            )

            response.headers["X-Request-ID"] = request_id
            return response

    def _setup_routes(self):
        """Set up health, metrics and error handling routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                details = self._health_details()
            except ValidationServiceException as e:
                self.logger.error("Health check failed", code=e.code, error=e.message)
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": e.message}
                )

            self.metrics.record_health_check("ok")
            return {
                "service": self.service_name,
                "status": "ok",
                "uptime_seconds": round(time.time() - self._start_time, 3),
                "version": "1.0.0",
                "commit": os.getenv("GIT_COMMIT", "unknown"),
                **details,
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

        @self.app.exception_handler(ValidationServiceException)
        async def service_exception_handler(request: Request, exc: ValidationServiceException):
            """Render service exceptions as ErrorResponse bodies."""
            status_code = self.status_codes.get(type(exc), 400)
            log = self.logger.error if status_code >= 500 else self.logger.info
            log("Request rejected", code=exc.code, message=exc.message, details=exc.details)
            self.metrics.record_error(exc.code)
            return JSONResponse(status_code=status_code, content=exc.to_response().model_dump())

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}
            )

    def _health_details(self) -> Dict[str, Any]:
        """Extra fields for the health body. Override in subclasses."""
        return {}

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
