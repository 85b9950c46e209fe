"""Files module for the wide API.

Provides the project-scoped file action endpoint: load, save, list, mkdir,
move, delete, autocomplete and project info.
"""
from .router import create_file_router
from .schemas import ActionRequest, FileEntry
from .service import Action, FileActionDispatcher, OperationResult, Status

__all__ = [
    'create_file_router',
    'ActionRequest',
    'FileEntry',
    'Action',
    'FileActionDispatcher',
    'OperationResult',
    'Status',
]
