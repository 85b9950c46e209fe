"""Application factory for the wide API."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..observability import RequestContextMiddleware
from .config import APIConfig
from .modules.files import create_file_router
from .modules.shell import ShellBridge, create_shell_router
from .registry import ProjectRegistry, load_registry

logger = logging.getLogger(__name__)


def create_app(
    config: APIConfig | None = None,
    registry: ProjectRegistry | None = None,
    bridge: ShellBridge | None = None,
    include_shell: bool = True,
) -> FastAPI:
    """Create a pre-wired FastAPI application.

    All dependencies are injectable for testing and customization.

    Args:
        config: API configuration. Defaults to environment-driven APIConfig().
        registry: Project registry. Defaults to loading ``config.config_path``.
        bridge: Shell bridge. Defaults to a fresh ShellBridge(config).
        include_shell: Include the terminal WebSocket router (default: True)

    Returns:
        Configured FastAPI application with all routes mounted.

    Raises:
        RegistryError: If no registry is given and the document cannot be loaded.

    Example:
        config = APIConfig(workspace_root=Path('/srv/projects'))
        app = create_app(config)
    """
    config = config or APIConfig()
    if registry is None:
        registry = load_registry(config.config_path, config.workspace_root)
    bridge = bridge or ShellBridge(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info('wide API startup')
        logger.info('Workspace root: %s', config.workspace_root)
        logger.info('Projects: %d', len(registry))
        yield
        await bridge.close_all()

    app = FastAPI(
        title='wide API',
        description='File actions and terminal sessions for browser-based project editing',
        version='0.1.0',
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.registry = registry
    app.state.shell_bridge = bridge

    # CORS wraps request correlation, so preflight answers skip the request log.
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    app.include_router(create_file_router(config, registry))
    if include_shell:
        app.include_router(create_shell_router(config, registry, bridge), prefix='/ws')

    @app.get('/health')
    async def health():
        """Health check endpoint."""
        return {
            'status': 'ok',
            'projects': len(registry),
            'shell_sessions': bridge.session_count,
            'features': {
                'shell': include_shell,
            },
        }

    return app
