"""REST endpoints for users and tasks."""

import json
import logging
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from llamaio.core.config import constants, settings
from llamaio.core.errors import ValidationFailedError, classify_error_with_response
from llamaio.core.logging import log_with_context
from llamaio.core.query_parser import parse_projection, parse_read_query
from llamaio.services import task_service, user_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

_FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")
# Form fields that always carry a list, even with a single value
_LIST_FORM_FIELDS = frozenset({"pendingTasks"})


class ApiResponse(BaseModel):
    """Envelope shared by every response body."""

    message: str
    data: Any = None


def envelope(message: str, data: Any = None, status_code: int = constants.HTTP_OK) -> JSONResponse:
    """Build a `{message, data}` JSON response."""
    return JSONResponse(content=ApiResponse(message=message, data=data).model_dump(), status_code=status_code)


def error_response(exception: Exception) -> JSONResponse:
    """Render an exception as an error envelope with the mapped status code."""
    error = classify_error_with_response(exception)
    level = "warning" if error.status_code < constants.HTTP_SERVER_ERROR else "error"
    log_with_context(
        logger,
        level,
        "request_failed",
        code=error.code,
        status_code=error.status_code,
        error=str(exception),
    )
    return envelope(error.message, None, error.status_code)


async def read_payload(request: Request) -> dict[str, Any]:
    """Read a JSON or form-encoded request body into a dict.

    Raises:
        ValidationFailedError: If a JSON body is malformed or not an object
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(_FORM_CONTENT_TYPES):
        form = await request.form()
        payload: dict[str, Any] = {}
        for raw_key in form.keys():
            values = form.getlist(raw_key)
            key = raw_key.removesuffix("[]")
            payload[key] = list(values) if key in _LIST_FORM_FIELDS or len(values) > 1 else values[0]
        return payload

    body = await request.body()
    if not body.strip():
        return {}
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise ValidationFailedError("Validation Error: Request body is not valid JSON.") from e
    if not isinstance(payload, dict):
        raise ValidationFailedError("Validation Error: Request body must be a JSON object.")
    return payload


@router.get("")
async def get_home() -> JSONResponse:
    """Report that the API is live, masking the connection string."""
    return envelope("llamaio API is live!", f"My connection string is {settings.masked_connection_string}")


# --- /api/users ---


@router.get("/users")
async def list_users(request: Request) -> JSONResponse:
    """List users; supports where, sort, select, skip, limit and count."""
    query = parse_read_query(request.query_params)
    users = await user_service.list_users(query=query)
    return envelope("OK", users)


@router.post("/users")
async def create_user(request: Request) -> JSONResponse:
    """Create a user."""
    payload = await read_payload(request)
    user = await user_service.create_user(payload=payload)
    return envelope("User created successfully", user, constants.HTTP_CREATED)


@router.get("/users/{user_id}")
async def get_user(user_id: str, request: Request) -> JSONResponse:
    """Get a user by ID; supports select."""
    projection = parse_projection(request.query_params.get("select"))
    user = await user_service.get_user(user_id=user_id, projection=projection)
    return envelope("OK", user)


@router.put("/users/{user_id}")
async def replace_user(user_id: str, request: Request) -> JSONResponse:
    """Replace a user, reassigning added and removed pending tasks."""
    payload = await read_payload(request)
    user = await user_service.replace_user(user_id=user_id, payload=payload)
    return envelope("User replaced successfully", user)


@router.delete("/users/{user_id}")
async def delete_user(user_id: str) -> Response:
    """Delete a user, unassigning their pending tasks."""
    user = await user_service.delete_user(user_id=user_id)
    logger.info("User deleted successfully", extra={"user_id": user["_id"], "email": user["email"]})
    # 204 responses carry no body on the wire
    return Response(status_code=constants.HTTP_NO_CONTENT)


# --- /api/tasks ---


@router.get("/tasks")
async def list_tasks(request: Request) -> JSONResponse:
    """List tasks; supports where, sort, select, skip, limit (default 100) and count."""
    query = parse_read_query(request.query_params, default_limit=constants.DEFAULT_TASK_LIMIT)
    tasks = await task_service.list_tasks(query=query)
    return envelope("OK", tasks)


@router.post("/tasks")
async def create_task(request: Request) -> JSONResponse:
    """Create a task, adding it to the assignee's pending tasks."""
    payload = await read_payload(request)
    task = await task_service.create_task(payload=payload)
    return envelope("Task created successfully", task, constants.HTTP_CREATED)


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, request: Request) -> JSONResponse:
    """Get a task by ID; supports select."""
    projection = parse_projection(request.query_params.get("select"))
    task = await task_service.get_task(task_id=task_id, projection=projection)
    return envelope("OK", task)


@router.put("/tasks/{task_id}")
async def replace_task(task_id: str, request: Request) -> JSONResponse:
    """Replace a task, moving it between users' pending tasks as needed."""
    payload = await read_payload(request)
    task = await task_service.replace_task(task_id=task_id, payload=payload)
    return envelope("Task replaced successfully", task)


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str) -> Response:
    """Delete a task, removing it from the assignee's pending tasks."""
    task = await task_service.delete_task(task_id=task_id)
    logger.info("Task deleted successfully", extra={"task_id": task["_id"]})
    return Response(status_code=constants.HTTP_NO_CONTENT)
