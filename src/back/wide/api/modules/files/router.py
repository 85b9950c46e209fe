"""File action routes for the wide API."""
import json

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from ...config import APIConfig
from ...errors import BadRequest
from ...registry import ProjectRegistry
from .schemas import ActionRequest
from .service import FileActionDispatcher, OperationResult

ACTION_PATHS = ('/', '/api/action')


async def _parse_body(request: Request) -> ActionRequest:
    """Read a JSON, form-encoded or multipart action request.

    Multipart file parts are read as UTF-8 text, so a client may send
    ``content`` as a Blob.

    Raises:
        BadRequest: If the body cannot be parsed into an action request
    """
    content_type = request.headers.get('content-type', '')
    try:
        if content_type.startswith('application/json'):
            data = await request.json()
        else:
            data = {}
            async with request.form() as form:
                for name, value in form.items():
                    if isinstance(value, UploadFile):
                        value = (await value.read()).decode('utf-8')
                    data[name] = value
        if not isinstance(data, dict):
            raise BadRequest('invalid request body')
        return ActionRequest.model_validate(data)
    except (
        json.JSONDecodeError,
        UnicodeDecodeError,
        ValidationError,
        MultiPartException,
        HTTPException,
    ) as e:
        raise BadRequest('invalid request body') from e


def to_response(result: OperationResult) -> Response:
    """Render an OperationResult for the HTTP transport."""
    if result.body is not None:
        return Response(content=result.body, media_type=result.media_type)
    if result.bare:
        return Response(status_code=result.error.http_status)
    return JSONResponse(result.to_dict())


def create_file_router(config: APIConfig, registry: ProjectRegistry) -> APIRouter:
    """Create the file action router.

    Args:
        config: API configuration (extension policy, key hashing)
        registry: Project registry used to resolve request keys

    Returns:
        Configured APIRouter with the action endpoint
    """
    router = APIRouter(tags=['files'])
    dispatcher = FileActionDispatcher(config, registry)

    async def file_action(request: Request):
        """Run one file action (load, save, list, mkdir, move, delete, autocomplete, project)."""
        try:
            body = await _parse_body(request)
        except BadRequest as e:
            return to_response(OperationResult.failure(e))
        # Filesystem work runs off the event loop.
        result = await run_in_threadpool(dispatcher.dispatch, body)
        return to_response(result)

    for path in ACTION_PATHS:
        router.add_api_route(path, file_action, methods=['POST'])

    return router
