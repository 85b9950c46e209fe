"""Terminal WebSocket router for the wide API."""
import os
from pathlib import Path

from fastapi import APIRouter, Query, WebSocket

from ....observability.logging import get_logger
from ...config import APIConfig
from ...errors import OperationError
from ...registry import ProjectRegistry, authorize
from .service import SessionLimitReached, ShellBridge

logger = get_logger(__name__)


def _shell_start_error_message(exc: Exception, command: tuple[str, ...]) -> str:
    # Stable and human-readable; no stack traces to clients.
    cmd_str = ' '.join(command) if command else '<empty>'
    detail = str(exc).strip()
    if detail:
        return f'Shell failed to start ({type(exc).__name__}): {detail} (command: {cmd_str})'
    return f'Shell failed to start ({type(exc).__name__}) (command: {cmd_str})'


def create_shell_router(
    config: APIConfig,
    registry: ProjectRegistry,
    bridge: ShellBridge,
) -> APIRouter:
    """Create the terminal WebSocket router.

    Args:
        config: API configuration (shell command, key hashing)
        registry: Project registry used to pick the shell's working directory
        bridge: Session manager that owns the spawned shells

    Returns:
        FastAPI router with the /shell WebSocket endpoint
    """
    router = APIRouter(tags=['shell'])

    @router.websocket('/shell')
    async def shell_websocket(websocket: WebSocket, key: str | None = Query(None)):
        """Raw terminal channel.

        Args:
            key: Project key; the shell starts in that project's root folder.
                Without a key it starts in the workspace root.
        """
        if key:
            try:
                project = authorize(registry, key, config.lookup_salt)
            except OperationError as e:
                await websocket.close(code=4003, reason=e.message)
                return
            root_folder = project.root_folder
        else:
            root_folder = Path(os.path.abspath(config.workspace_root))

        await websocket.accept()
        try:
            session = await bridge.open_session(websocket, root_folder)
        except SessionLimitReached as e:
            await websocket.close(code=4004, reason=str(e))
            return
        except Exception as exc:
            logger.warning(
                'shell_spawn_failed',
                command=list(config.shell_command),
                cwd=str(root_folder),
                error=str(exc),
            )
            try:
                await websocket.send_text(_shell_start_error_message(exc, config.shell_command))
                await websocket.close(code=1011, reason='Shell start failed')
            except RuntimeError:
                pass
            return

        await bridge.run_session(session)

    return router
