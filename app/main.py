from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.errors import WorkspaceError
from app.core.rate_limit import limiter
from app.core.storage import StorageProvider, TeamLocks, build_storage_provider
from app.features.permissions.routes import router as permission_router
from app.features.permissions.table import PermissionTable, build_permission_table
from app.features.settings.routes import router as settings_router
from app.features.teams.routes import router as team_router, invitation_router
from app.features.users.auth import AuthenticationProvider, build_auth_provider
from app.features.users.routes import router as user_router
from app.utils import get_logger


log = get_logger(__name__)


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


def create_app(
    storage_provider: StorageProvider | None = None,
    auth_provider: AuthenticationProvider | None = None,
    permission_table: PermissionTable | None = None,
) -> FastAPI:
    """
    Build the application.

    Collaborators default to what the configuration names; tests pass their
    own (in-memory storage, fixed identity).
    """
    log.info("Initializing server")
    app = FastAPI(
        title="Invoice Intelligence Workspace",
        description="Teams, memberships, invitations and role-based access control",
        version="0.1.0",
        docs_url="/docs" if config.ENABLE_DOCS else None,
        redoc_url="/redoc" if config.ENABLE_DOCS else None,
        openapi_url="/openapi.json" if config.ENABLE_DOCS else None
    )

    # Built once, shared by reference with every guard
    app.state.permission_table = permission_table or build_permission_table()
    app.state.storage_provider = storage_provider or build_storage_provider()
    app.state.auth_provider = auth_provider or build_auth_provider()
    app.state.team_locks = TeamLocks()
    app.state.limiter = limiter

    app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

    if config.ENABLE_DOCS:
        log.warning("Docs enabled")
    if config.ALLOW_ORIGIN:
        log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
        origins = [config.ALLOW_ORIGIN]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError):
        errors = dict()
        for error in exc.errors():
            if "loc" not in error or "msg" not in error:
                continue
            key = error["loc"][-1]
            if key == "__root__":
                key = "root"
            errors[key] = error["msg"]
        log.info("Request validation error %s", errors)
        return JSONResponse(status_code=400, content=jsonable_encoder(errors))

    @app.exception_handler(WorkspaceError)
    async def workspace_error_handler(request: Request, exc: WorkspaceError):
        log.info("%s %s -> %s (%s)", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
        return JSONResponse({"error": "You are going too fast"}, status_code=429)

    @app.on_event("startup")
    async def startup():
        """Prepare the storage backend on application startup."""
        log.info("Preparing storage...")
        await app.state.storage_provider.startup()
        log.info("Storage ready")

    @app.get("/")
    async def root():
        """Root endpoint - API health check."""
        return {
            "message": "Invoice Intelligence Workspace API",
            "version": "0.1.0",
            "status": "online",
            "docs": "/docs" if config.ENABLE_DOCS else None,
            "storage": config.STORAGE_BACKEND,
            "features": {
                "teams": "Teams with one owner and role-tagged members",
                "invitations": "Email invitations that expire after %d days" % config.INVITATION_TTL_DAYS,
                "permissions": "Static role -> permission table enforced per team",
                "settings": "Notification preferences and security settings",
            }
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    # Include routers
    app.include_router(user_router, prefix="/users", tags=["users"])
    app.include_router(team_router, prefix="/teams", tags=["teams"])
    app.include_router(invitation_router, prefix="/invitations", tags=["invitations"])
    app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
    app.include_router(settings_router, prefix="/settings", tags=["settings"])

    return app


app = create_app()
