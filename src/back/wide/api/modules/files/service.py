"""File action dispatcher for the wide API.

Routes a ``{action, key, ...}`` request to one handler per action and turns
every outcome into an ``OperationResult``. Handlers either return a result or
raise an ``OperationError``; the conversion to a failure happens in exactly
one place (``dispatch``), so a handler cannot report failure and success for
the same request.
"""
import mimetypes
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from ....observability.logging import get_logger
from ...config import APIConfig
from ...errors import (
    BadRequest,
    ErrorCode,
    Forbidden,
    NotFound,
    OperationError,
)
from ...registry import ProjectDescriptor, ProjectRegistry, authorize
from ...sandbox import resolve_path
from .schemas import ActionRequest, FileEntry

logger = get_logger(__name__)

_TEXTUAL_TYPES = {'application/json', 'application/javascript', 'application/xml'}


class Action(str, Enum):
    """Actions understood by the dispatcher."""
    LOAD = 'load'
    SAVE = 'save'
    LIST = 'list'
    MKDIR = 'mkdir'
    MOVE = 'move'
    DELETE = 'delete'
    AUTOCOMPLETE = 'autocomplete'
    PROJECT = 'project'


class Status(int, Enum):
    SUCCESS = 1
    FAILURE = -1


@dataclass(frozen=True)
class OperationResult:
    """Uniform outcome of a file action.

    ``body``/``media_type`` are only set by a successful load, which answers
    with raw bytes. ``bare`` marks failures that are answered with a status
    code and no body (load again).
    """
    status: Status
    msg: str
    payload: dict[str, Any] = field(default_factory=dict)
    error: Optional[ErrorCode] = None
    debug: Optional[str] = None
    body: Optional[bytes] = None
    media_type: Optional[str] = None
    bare: bool = False

    @classmethod
    def success(cls, msg: str, **payload: Any) -> 'OperationResult':
        return cls(status=Status.SUCCESS, msg=msg, payload=payload)

    @classmethod
    def failure(cls, exc: OperationError, bare: bool = False) -> 'OperationResult':
        return cls(
            status=Status.FAILURE,
            msg=exc.message,
            error=exc.code,
            debug=exc.debug,
            bare=bare,
        )

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Envelope sent to the client."""
        data: dict[str, Any] = {'status': int(self.status), 'msg': self.msg}
        data.update(self.payload)
        if self.error is not None:
            data['error'] = self.error.value
        if self.debug is not None:
            data['debug'] = self.debug
        return data


def content_type(name: str) -> Optional[str]:
    """Guess a Content-Type for a file name, charset included for text."""
    mime, _ = mimetypes.guess_type(name)
    if mime is None:
        return None
    if mime.startswith('text/') or mime in _TEXTUAL_TYPES:
        return f'{mime}; charset=utf-8'
    return mime


def normalize_folder(folder: str) -> str:
    """Folder string echoed by list, always with one trailing separator."""
    return folder.rstrip('/') + '/'


class FileActionDispatcher:
    """Dispatches file actions against the configured projects.

    Args:
        config: API configuration (extension policy, key hashing)
        registry: Read-only project registry
    """

    def __init__(self, config: APIConfig, registry: ProjectRegistry):
        self.config = config
        self.registry = registry
        self.policy = config.extension_policy
        self.key_salt = config.lookup_salt
        self._handlers: dict[Action, Callable[[ProjectDescriptor, ActionRequest], OperationResult]] = {
            Action.LOAD: self._load,
            Action.SAVE: self._save,
            Action.LIST: self._list,
            Action.MKDIR: self._mkdir,
            Action.MOVE: self._move,
            Action.DELETE: self._delete,
            Action.AUTOCOMPLETE: self._autocomplete,
            Action.PROJECT: self._project,
        }
        unhandled = set(Action) - set(self._handlers)
        if unhandled:
            raise RuntimeError(f'No handler for actions: {sorted(a.value for a in unhandled)}')

    def dispatch(self, request: ActionRequest) -> OperationResult:
        """Run one action request to completion and report its outcome."""
        project: Optional[ProjectDescriptor] = None
        try:
            if not request.action:
                raise BadRequest('action missing')
            project = authorize(self.registry, request.key, self.key_salt)
            try:
                action = Action(request.action)
            except ValueError:
                raise BadRequest('unknown action')
            result = self._handlers[action](project, request)
        except OperationError as e:
            result = OperationResult.failure(e)
        except Exception:
            logger.exception('file_action_crashed', action=request.action)
            result = OperationResult.failure(OperationError('internal error'))

        logger.info(
            'file_action',
            action=request.action,
            project=project.name if project else None,
            status=int(result.status),
            error=result.error.value if result.error else None,
        )
        return result

    def _load(self, project: ProjectDescriptor, request: ActionRequest) -> OperationResult:
        try:
            if not request.filename:
                raise NotFound('file not found')
            try:
                path = resolve_path(
                    project.root_folder,
                    request.filename,
                    self.policy,
                    blocked_msg='cannot load serverside files',
                )
            except BadRequest as e:
                raise Forbidden(e.message) from e
            if not path.is_file():
                raise NotFound('file not found')
            try:
                content = path.read_bytes()
            except OSError as e:
                raise Forbidden('cannot read file') from e
        except OperationError as e:
            return OperationResult.failure(e, bare=True)

        return OperationResult(
            status=Status.SUCCESS,
            msg='file loaded',
            body=content,
            media_type=content_type(path.name) or 'application/octet-stream',
        )

    def _save(self, project: ProjectDescriptor, request: ActionRequest) -> OperationResult:
        if not request.filename or request.content is None:
            raise BadRequest('params missing')
        path = resolve_path(
            project.root_folder,
            request.filename,
            self.policy,
            blocked_msg='cannot save serverside files',
        )
        try:
            path.write_bytes(request.content.encode('utf-8'))
        except OSError as e:
            raise Forbidden('cannot save file, not allowed', debug=f"'{path}'") from e
        return OperationResult.success('file saved', filename=request.filename)

    def _list(self, project: ProjectDescriptor, request: ActionRequest) -> OperationResult:
        folder = resolve_path(project.root_folder, request.folder, invalid_msg='invalid folder')
        if not folder.is_dir():
            raise NotFound("folder doesn't exist")

        files = []
        try:
            with os.scandir(folder) as it:
                for entry in it:
                    files.append(self._entry(entry).model_dump())
        except PermissionError as e:
            raise Forbidden('cannot read folder') from e
        except OSError as e:
            raise NotFound("folder doesn't exist") from e

        return OperationResult.success(
            'file list',
            project=project.name,
            folder=normalize_folder(request.folder),
            files=files,
        )

    @staticmethod
    def _entry(entry: os.DirEntry) -> FileEntry:
        try:
            stat = entry.stat()
            is_dir = entry.is_dir()
        except OSError:
            # dangling symlink
            return FileEntry(name=entry.name, is_dir=False, mime_type=content_type(entry.name))
        return FileEntry(
            name=entry.name,
            is_dir=is_dir,
            mime_type=content_type(entry.name),
            size=stat.st_size,
        )

    def _mkdir(self, project: ProjectDescriptor, request: ActionRequest) -> OperationResult:
        folder = resolve_path(project.root_folder, request.folder, invalid_msg='invalid folder name')
        try:
            folder.mkdir()
        except OSError as e:
            raise Forbidden('cannot create folder, not allowed', debug=f"'{folder}'") from e
        return OperationResult.success('folder created')

    def _move(self, project: ProjectDescriptor, request: ActionRequest) -> OperationResult:
        if not request.filename or not request.new_filename:
            raise BadRequest('params missing')
        source = resolve_path(
            project.root_folder,
            request.filename,
            self.policy,
            blocked_msg='cannot move this extension',
        )
        target = resolve_path(
            project.root_folder,
            request.new_filename,
            self.policy,
            blocked_msg='cannot move this extension',
        )
        try:
            os.rename(source, target)
        except OSError as e:
            raise Forbidden('cannot move file, not allowed', debug=f"'{source}'") from e
        return OperationResult.success('file moved', filename=request.new_filename)

    def _delete(self, project: ProjectDescriptor, request: ActionRequest) -> OperationResult:
        path = resolve_path(
            project.root_folder,
            request.filename,
            self.policy,
            blocked_msg='cannot delete serverside files',
        )
        try:
            path.unlink()
        except OSError as e:
            raise Forbidden('cannot delete file, not allowed', debug=f"'{path}'") from e
        return OperationResult.success('file deleted')

    def _autocomplete(self, project: ProjectDescriptor, request: ActionRequest) -> OperationResult:
        # Validate the whole candidate, then list its parent folder.
        resolve_path(project.root_folder, request.filename)
        parent, _, start = request.filename.rpartition('/')
        folder = resolve_path(project.root_folder, parent, required=False)
        try:
            names = os.listdir(folder)
        except OSError as e:
            raise NotFound("folder doesn't exist") from e

        matches = sorted(name for name in names if start in name)
        return OperationResult.success('file autocompleted', data=matches)

    def _project(self, project: ProjectDescriptor, request: ActionRequest) -> OperationResult:
        return OperationResult.success('project info', data=project.to_dict())
