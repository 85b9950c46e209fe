"""Feature modules for the wide API.

- files: project-scoped file actions
- shell: terminal WebSocket bridge
"""
from .files import create_file_router
from .shell import create_shell_router

__all__ = [
    'create_file_router',
    'create_shell_router',
]
