"""Deployment API server.

Provides the FastAPI application factory and server lifecycle management
for creating and polling deployment jobs over HTTP.
"""

from __future__ import annotations

from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from terradeck.deploy.bundles import BundleSource
from terradeck.deploy.credentials import auth_result_payload
from terradeck.deploy.registry import DeploymentRegistry
from terradeck.lib.errors import BundleNotFoundError, BundleReadError
from terradeck.lib.logging_config import get_logger
from terradeck.models.deployment import ConfigurationBundle, DeploymentJob
from terradeck.serve.middleware import (
    ErrorHandlingMiddleware,
    LoggingMiddleware,
    problem_response,
)
from terradeck.serve.models import (
    CancelDeploymentResponse,
    CreateDeploymentRequest,
    CreateDeploymentResponse,
    HealthResponse,
    ServerState,
)

logger = get_logger(__name__)


class DeploymentServer:
    """HTTP server exposing the deployment registry.

    Attributes:
        registry: The deployment registry serving all jobs.
        bundle_source: Resolves ``reference_id`` values to bundles.
        host: The hostname to bind to.
        port: The port to listen on.
        state: The current server state.
    """

    def __init__(
        self,
        registry: DeploymentRegistry,
        bundle_source: BundleSource | None = None,
        host: str = "127.0.0.1",
        port: int = 8000,
        cors_origins: list[str] | None = None,
        debug: bool = False,
    ) -> None:
        """Initialize the deployment server.

        Args:
            registry: The deployment registry.
            bundle_source: Bundle source for ``reference_id`` requests. Without
                one, only inline files are accepted.
            host: The hostname to bind to (default: 127.0.0.1).
            port: The port to listen on (default: 8000).
            cors_origins: List of allowed CORS origins (default: ["*"]).
            debug: Include exception details in error responses.
        """
        self.registry = registry
        self.bundle_source = bundle_source
        self.host = host
        self.port = port
        self.cors_origins = cors_origins or ["*"]
        self.debug = debug

        if host == "0.0.0.0":  # noqa: S104
            logger.warning(
                "Server binding to 0.0.0.0 exposes it to all network interfaces. "
                "Use 127.0.0.1 for local-only access."
            )

        self.state = ServerState.INITIALIZING
        self._app: FastAPI | None = None
        self._start_time: datetime | None = None

    @property
    def is_ready(self) -> bool:
        """Check if the server is ready to accept requests."""
        return self.state in (ServerState.READY, ServerState.RUNNING)

    @property
    def uptime_seconds(self) -> float:
        """Return server uptime in seconds."""
        if self._start_time is None:
            return 0.0
        return (datetime.now(timezone.utc) - self._start_time).total_seconds()

    def create_app(self) -> FastAPI:
        """Create and configure the FastAPI application.

        Returns:
            Configured FastAPI application instance.
        """
        app = FastAPI(
            title="TerraDeck Deployment API",
            description="Create Terraform deployments and poll their progress",
            version="0.1.0",
        )

        app.add_middleware(
            CORSMiddleware,
            allow_origins=self.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        # Starlette runs middleware in reverse order of addition:
        # Logging -> ErrorHandling -> CORS -> Handler
        app.add_middleware(ErrorHandlingMiddleware, debug=self.debug)
        app.add_middleware(LoggingMiddleware, debug=self.debug)

        self._register_exception_handlers(app)
        self._register_health_endpoints(app)
        self._register_deployment_endpoints(app)

        self._app = app
        self.state = ServerState.READY
        logger.info("FastAPI app created for deployment API")
        return app

    def _register_exception_handlers(self, app: FastAPI) -> None:
        @app.exception_handler(StarletteHTTPException)
        async def http_error(request: Request, exc: StarletteHTTPException) -> Any:
            return problem_response(
                exc.status_code,
                _status_title(exc.status_code),
                detail=str(exc.detail) if exc.detail else None,
                instance=request.url.path,
            )

        @app.exception_handler(RequestValidationError)
        async def validation_error(
            request: Request, exc: RequestValidationError
        ) -> Any:
            messages = [
                f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
                for err in exc.errors()
            ]
            return problem_response(
                422,
                "Validation Error",
                detail="; ".join(messages),
                instance=request.url.path,
            )

    def _register_health_endpoints(self, app: FastAPI) -> None:
        @app.get("/health", response_model=HealthResponse, tags=["Health"])
        async def health() -> HealthResponse:
            """Basic health check endpoint."""
            jobs = self.registry.list()
            return HealthResponse(
                status="healthy" if self.is_ready else "unhealthy",
                ready=self.is_ready,
                total_jobs=len(jobs),
                running_jobs=sum(1 for job in jobs if not job.is_finished),
                uptime_seconds=self.uptime_seconds,
            )

        @app.get("/ready", tags=["Health"])
        async def ready() -> dict[str, bool]:
            """Readiness check endpoint for orchestrators."""
            return {"ready": self.is_ready}

    def _register_deployment_endpoints(self, app: FastAPI) -> None:
        @app.post(
            "/deployments",
            response_model=CreateDeploymentResponse,
            status_code=status.HTTP_202_ACCEPTED,
            tags=["Deployments"],
        )
        async def create_deployment(
            request: CreateDeploymentRequest,
        ) -> CreateDeploymentResponse:
            """Create a deployment and start it in the background."""
            bundle = self._resolve_bundle(request)
            job_id = self.registry.create(
                request.resolved_subject_name, bundle, request.action
            )
            return CreateDeploymentResponse(job_id=job_id)

        @app.get(
            "/deployments", response_model=list[DeploymentJob], tags=["Deployments"]
        )
        async def list_deployments() -> list[DeploymentJob]:
            """List all known deployments, newest first."""
            return self.registry.list()

        @app.get(
            "/deployments/{job_id}",
            response_model=DeploymentJob,
            tags=["Deployments"],
        )
        async def get_deployment(job_id: str) -> DeploymentJob:
            """Return the current status, history and log of a deployment."""
            job = self.registry.get(job_id)
            if job is None:
                raise HTTPException(status_code=404, detail=f"Unknown job: {job_id}")
            return job

        @app.post(
            "/deployments/{job_id}/cancel",
            response_model=CancelDeploymentResponse,
            tags=["Deployments"],
        )
        async def cancel_deployment(job_id: str) -> CancelDeploymentResponse:
            """Cancel a running deployment."""
            if self.registry.get(job_id) is None:
                raise HTTPException(status_code=404, detail=f"Unknown job: {job_id}")
            return CancelDeploymentResponse(
                job_id=job_id, cancelled=self.registry.cancel(job_id)
            )

        @app.get("/auth/status", tags=["Auth"])
        async def auth_status() -> dict[str, Any]:
            """Run the credential gate and report its diagnostics."""
            result = await self.registry.credential_gate.authenticate()
            return auth_result_payload(result)

    def _resolve_bundle(self, request: CreateDeploymentRequest) -> ConfigurationBundle:
        if request.files is not None:
            return ConfigurationBundle(files=tuple(request.files))

        reference_id = request.reference_id or ""
        if self.bundle_source is None:
            raise HTTPException(
                status_code=404,
                detail="No bundle source configured; send inline 'files' instead",
            )
        try:
            return self.bundle_source.fetch(reference_id)
        except BundleNotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        except BundleReadError as exc:
            raise HTTPException(status_code=422, detail=exc.message) from exc

    async def start(self) -> None:
        """Mark the server as running."""
        if self._app is None:
            self.create_app()
        self._start_time = datetime.now(timezone.utc)
        self.state = ServerState.RUNNING
        logger.info(f"Deployment server started at http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the server, cancelling in-flight deployments."""
        self.state = ServerState.SHUTTING_DOWN
        await self.registry.shutdown()
        self.state = ServerState.STOPPED
        logger.info("Deployment server stopped")


def _status_title(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Error"
