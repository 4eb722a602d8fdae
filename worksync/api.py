"""
HTTP API for the WorkSync backend.

Every response is an envelope: ``{"success": true, "data": ...}`` or
``{"success": false, "error": {"code", "message"[, "details"]}}``.
"""
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import MutableHeaders
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

from .analysis import analyze_task_content, productivity_insights
from .auth import AdoSession, AuthMode
from .constants import SERVICE_VERSION, QueryLimits, TaskPriority, TaskStatus
from .errors import AdoConnectionFailedError, WorkSyncError
from .models import isoformat, utcnow
from .scoring import recommend
from .service_manager import ServiceManager
from .validation import (
    ValidationError,
    parse_bool,
    parse_csv,
    parse_int,
    parse_number,
    validate_backlog_top,
    validate_profile_payload,
    validate_task_payload,
    validate_work_item_id,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Envelope helpers
# ============================================================================

def success(data: Any, status_code: int = 200, **extra) -> JSONResponse:
    return JSONResponse({'success': True, 'data': data, **extra}, status_code=status_code)


def failure(code: str, message: str, status_code: int, details: Any = None, headers=None) -> JSONResponse:
    error: Dict[str, Any] = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return JSONResponse({'success': False, 'error': error}, status_code=status_code, headers=headers)


async def _json_body(request: Request, required: bool = True) -> Dict[str, Any]:
    raw = await request.body()
    if not raw:
        if required:
            raise ValidationError("Request body is required")
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _manager(request: Request) -> ServiceManager:
    return request.app.state.manager


def _user_id(request: Request) -> int:
    """Resolve the acting user from X-User-Id, or the default user."""
    manager = _manager(request)
    header = request.headers.get('x-user-id')
    if not header:
        return manager.default_user_id

    user_id = parse_int(header, "X-User-Id", minimum=1)
    manager.store.get_user(user_id)
    return user_id


def _choice(value: Optional[str], field: str, allowed) -> Optional[str]:
    if value is None or value == '':
        return None
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field}: '{value}'. Allowed values: {', '.join(allowed)}",
            field=field
        )
    return value


def _task_id(request: Request) -> int:
    return parse_int(request.path_params['id'], "id", minimum=1)


# ============================================================================
# Azure DevOps routes
# ============================================================================

def _validate_initialize(body: Dict[str, Any]) -> AdoSession:
    problems = []

    organization = body.get('organization')
    if not isinstance(organization, str) or not organization.strip():
        problems.append({'field': 'organization', 'message': 'ADO organization is required'})
    elif '/' in organization or ' ' in organization.strip():
        problems.append({'field': 'organization', 'message': 'Organization must be a name or host, not a URL'})

    token = body.get('accessToken')
    if not isinstance(token, str) or not token.strip():
        problems.append({'field': 'accessToken', 'message': 'Access token is required'})

    mode = body.get('authMode') or AuthMode.BEARER
    if mode not in AuthMode.ALL:
        problems.append({'field': 'authMode', 'message': f"authMode must be one of: {', '.join(AuthMode.ALL)}"})

    if problems:
        raise ValidationError("Invalid input data", details=problems)

    return AdoSession(organization.strip(), token.strip(), mode)


async def ado_initialize(request: Request) -> JSONResponse:
    session = _validate_initialize(await _json_body(request))
    manager = _manager(request)

    result = await manager.create_ado_client(session).test_connection()
    if not result['success']:
        raise AdoConnectionFailedError(result['message'])

    manager.configure_ado(session)
    return success({
        'message': 'ADO service initialized successfully',
        'organization': session.organization,
        'userInfo': result['userInfo'],
    })


async def ado_projects(request: Request) -> JSONResponse:
    client = await _manager(request).get_ado_client()
    projects = await client.get_projects()
    return success([project.to_dict() for project in projects], totalCount=len(projects))


async def ado_backlog(request: Request) -> JSONResponse:
    manager = _manager(request)
    client = await manager.get_ado_client()

    project_id = request.path_params['projectId'].strip()
    if not project_id:
        raise ValidationError("Project ID is required", field="projectId")

    params = request.query_params
    states = parse_csv(params.get('states'), "states")
    types = parse_csv(params.get('types'), "types")
    top = validate_backlog_top(params.get('top'))
    assigned_to_me = parse_bool(params.get('assignedToMe'), "assignedToMe")
    assigned_to_team = parse_bool(params.get('assignedToTeam'), "assignedToTeam")

    if assigned_to_me is None:
        # assignedToTeam=true widens the query to the whole team
        assigned_to_me = not assigned_to_team

    # An explicit empty value (states=) drops the filter
    if states is None:
        states = manager.settings.ado_backlog_states
    if types is None:
        types = manager.settings.ado_backlog_types

    items = await client.get_backlog_items(
        project_id,
        assigned_to_me=assigned_to_me,
        states=states,
        work_item_types=types,
        top=top
    )

    return success({
        'backlogItems': [item.to_dict() for item in items],
        'totalCount': len(items),
        'projectId': project_id,
        'filters': {
            'assignedToMe': assigned_to_me,
            'states': states,
            'types': types,
            'top': top,
        },
    })


async def ado_work_item(request: Request) -> JSONResponse:
    client = await _manager(request).get_ado_client()
    work_item_id = validate_work_item_id(request.path_params['workItemId'])
    work_item = await client.get_work_item(work_item_id)
    return success({'workItem': work_item.to_dict()})


async def ado_test_connection(request: Request) -> JSONResponse:
    client = await _manager(request).get_ado_client()
    result = await client.test_connection()
    return JSONResponse({'success': result['success'], 'data': result})


async def ado_activity(request: Request) -> JSONResponse:
    client = await _manager(request).get_ado_client()
    project_id = request.path_params['projectId'].strip()
    days = parse_int(
        request.query_params.get('days'), "days",
        minimum=1, maximum=90, default=QueryLimits.DEFAULT_ACTIVITY_DAYS
    )
    top = parse_int(
        request.query_params.get('top'), "top",
        minimum=1, maximum=QueryLimits.MAX_BACKLOG_TOP, default=QueryLimits.DEFAULT_ACTIVITY_TOP
    )

    activity = await client.get_recent_activity(project_id, days=days, top=top)
    return success({
        'activity': [entry.to_dict() for entry in activity],
        'totalCount': len(activity),
        'projectId': project_id,
    })


# ============================================================================
# Task routes
# ============================================================================

# Handlers that need no request body are plain functions, which Starlette
# runs in its threadpool; the others hand store calls to run_in_threadpool

def list_tasks(request: Request) -> JSONResponse:
    user_id = _user_id(request)
    params = request.query_params

    tasks, pagination = _manager(request).store.list_tasks(
        user_id,
        status=_choice(params.get('status'), "status", TaskStatus.ALL),
        priority=_choice(params.get('priority'), "priority", TaskPriority.ALL),
        limit=parse_int(params.get('limit'), "limit", minimum=1, maximum=100, default=50),
        offset=parse_int(params.get('offset'), "offset", minimum=0, default=0),
        sort=params.get('sort') or 'createdAt',
        order=params.get('order') or 'desc',
    )
    return success({
        'tasks': [task.to_dict() for task in tasks],
        'pagination': pagination,
    })


async def create_task(request: Request) -> JSONResponse:
    data = validate_task_payload(await _json_body(request))
    user_id = await run_in_threadpool(_user_id, request)
    task = await run_in_threadpool(_manager(request).store.create_task, user_id, data)
    return success({'task': task.to_dict()}, status_code=201)


def get_task(request: Request) -> JSONResponse:
    task = _manager(request).store.get_task(_user_id(request), _task_id(request))
    return success({'task': task.to_dict()})


async def update_task(request: Request) -> JSONResponse:
    task_id = _task_id(request)
    data = validate_task_payload(await _json_body(request), partial=True)
    user_id = await run_in_threadpool(_user_id, request)
    task = await run_in_threadpool(_manager(request).store.update_task, user_id, task_id, data)
    return success({'task': task.to_dict()})


def delete_task(request: Request) -> JSONResponse:
    _manager(request).store.delete_task(_user_id(request), _task_id(request))
    return success({'message': 'Task deleted successfully'})


def start_task(request: Request) -> JSONResponse:
    task = _manager(request).store.start_task(_user_id(request), _task_id(request))
    return success({'task': task.to_dict(), 'message': 'Task started successfully'})


async def complete_task(request: Request) -> JSONResponse:
    task_id = _task_id(request)
    body = await _json_body(request, required=False)
    actual_hours = parse_number(body.get('actualHours'), "actualHours")

    user_id = await run_in_threadpool(_user_id, request)
    task = await run_in_threadpool(
        _manager(request).store.complete_task, user_id, task_id, actual_hours=actual_hours
    )
    return success({'task': task.to_dict(), 'message': 'Task completed successfully'})


# ============================================================================
# User and AI routes
# ============================================================================

def get_profile(request: Request) -> JSONResponse:
    user = _manager(request).store.get_user(_user_id(request))
    return success({'user': user.to_dict()})


async def update_profile(request: Request) -> JSONResponse:
    data = validate_profile_payload(await _json_body(request))
    user_id = await run_in_threadpool(_user_id, request)
    user = await run_in_threadpool(_manager(request).store.update_user, user_id, **data)
    return success({'user': user.to_dict()})


def ai_recommendations(request: Request) -> JSONResponse:
    user_id = _user_id(request)
    kind = request.query_params.get('type') or 'priority'
    limit = parse_int(request.query_params.get('limit'), "limit", minimum=1, maximum=50, default=5)

    tasks = _manager(request).store.active_tasks(user_id)
    recommendations = recommend(tasks, kind, limit)
    return success({
        'recommendations': [rec.to_dict() for rec in recommendations],
        'type': kind,
        'generatedAt': isoformat(utcnow()),
    })


async def ai_analyze_task(request: Request) -> JSONResponse:
    body = await _json_body(request)
    title = body.get('title')
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Task title is required", field="title")

    description = body.get('description')
    if description is not None and not isinstance(description, str):
        raise ValidationError("Description must be a string", field="description")

    return success({'analysis': analyze_task_content(title, description)})


def ai_insights(request: Request) -> JSONResponse:
    tasks = _manager(request).store.recent_tasks(_user_id(request))
    return success({'insights': productivity_insights(tasks)})


# ============================================================================
# Health
# ============================================================================

def _health(manager: ServiceManager) -> Dict[str, Any]:
    return {
        'status': 'healthy',
        'timestamp': isoformat(utcnow()),
        'version': SERVICE_VERSION,
        'environment': manager.settings.environment,
    }


async def health(request: Request) -> JSONResponse:
    return success(_health(_manager(request)))


async def api_health(request: Request) -> JSONResponse:
    manager = _manager(request)
    return success({**_health(manager), 'ado': manager.ado_status()})


# ============================================================================
# Middleware
# ============================================================================

class RequestIdMiddleware:
    """Tag every HTTP response with an X-Request-ID header."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope['type'] != 'http':
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())
        scope.setdefault('state', {})['request_id'] = request_id

        async def send_with_request_id(message):
            if message['type'] == 'http.response.start':
                MutableHeaders(scope=message)['X-Request-ID'] = request_id
            await send(message)

        await self.app(scope, receive, send_with_request_id)


class RateLimitMiddleware:
    """
    Fixed-window rate limit per client address.

    Requests under ``path_prefix`` beyond ``max_requests`` within one window
    are answered with 429 RATE_LIMIT_EXCEEDED.
    """

    def __init__(
        self,
        app,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        path_prefix: str = '/api/',
        clock: Callable[[], float] = time.monotonic
    ):
        self.app = app
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.path_prefix = path_prefix
        self.clock = clock
        self._windows: Dict[str, tuple] = {}
        self._last_prune = clock()

    def _prune(self, now: float) -> None:
        """Forget clients whose window has expired, at most once per window."""
        if now - self._last_prune < self.window_seconds:
            return
        self._last_prune = now
        expired = [
            key for key, (started, _) in self._windows.items()
            if now - started >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]

    def _hit(self, key: str) -> Optional[float]:
        """Count a request; return seconds until reset when over the limit."""
        now = self.clock()
        self._prune(now)
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0

        count += 1
        self._windows[key] = (started, count)
        if count > self.max_requests:
            return self.window_seconds - (now - started)
        return None

    async def __call__(self, scope, receive, send):
        if scope['type'] != 'http' or not scope['path'].startswith(self.path_prefix):
            await self.app(scope, receive, send)
            return

        client = scope.get('client')
        key = client[0] if client else 'unknown'
        retry_after = self._hit(key)
        if retry_after is not None:
            logger.warning(f"Rate limit exceeded for {key}")
            response = failure(
                'RATE_LIMIT_EXCEEDED',
                'Too many requests from this IP, please try again later.',
                429,
                headers={'Retry-After': str(max(1, int(retry_after)))}
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)


# ============================================================================
# Exception handlers
# ============================================================================

async def handle_worksync_error(request: Request, exc: WorkSyncError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} -> {exc.http_status} {exc.code}: {exc}")
    return JSONResponse({'success': False, 'error': exc.to_dict()}, status_code=exc.http_status)


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return failure('NOT_FOUND', f"Route {request.method} {request.url.path} not found", 404)
    if exc.status_code == 405:
        return failure('METHOD_NOT_ALLOWED', f"Method {request.method} not allowed for {request.url.path}", 405)
    return failure('HTTP_ERROR', exc.detail, exc.status_code)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error in {request.method} {request.url.path}")
    return failure('INTERNAL_ERROR', 'An unexpected error occurred', 500)


# ============================================================================
# Application
# ============================================================================

API_ROUTES = [
    Route('/ado/initialize', ado_initialize, methods=['POST']),
    Route('/ado/projects', ado_projects, methods=['GET']),
    Route('/ado/backlog/{projectId}', ado_backlog, methods=['GET']),
    Route('/ado/workitem/{workItemId}', ado_work_item, methods=['GET']),
    Route('/ado/test-connection', ado_test_connection, methods=['GET']),
    Route('/ado/activity/{projectId}', ado_activity, methods=['GET']),

    Route('/tasks', list_tasks, methods=['GET']),
    Route('/tasks', create_task, methods=['POST']),
    Route('/tasks/{id}', get_task, methods=['GET']),
    Route('/tasks/{id}', update_task, methods=['PUT']),
    Route('/tasks/{id}', delete_task, methods=['DELETE']),
    Route('/tasks/{id}/start', start_task, methods=['POST']),
    Route('/tasks/{id}/complete', complete_task, methods=['POST']),

    Route('/users/profile', get_profile, methods=['GET']),
    Route('/users/profile', update_profile, methods=['PUT']),

    Route('/ai/recommendations', ai_recommendations, methods=['GET']),
    Route('/ai/analyze-task', ai_analyze_task, methods=['POST']),
    Route('/ai/insights', ai_insights, methods=['GET']),

    Route('/health', api_health, methods=['GET']),
]


def create_app(manager: ServiceManager, mcp_app: Optional[Starlette] = None) -> Starlette:
    """
    Build the ASGI application.

    Args:
        manager: Application context shared by all routes
        mcp_app: Optional FastMCP HTTP app, mounted at /mcp

    Returns:
        Starlette application
    """
    settings = manager.settings

    routes = [
        Route('/health', health, methods=['GET']),
        Mount('/api/v1', routes=API_ROUTES),
    ]
    if mcp_app is not None:
        routes.append(Mount('/mcp', app=mcp_app))

    middleware = [
        Middleware(RequestIdMiddleware),
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=['*'],
            allow_headers=['*'],
            expose_headers=['X-Request-ID'],
        ),
        Middleware(
            RateLimitMiddleware,
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
    ]

    app = Starlette(
        routes=routes,
        middleware=middleware,
        exception_handlers={
            WorkSyncError: handle_worksync_error,
            HTTPException: handle_http_exception,
            Exception: handle_unexpected_error,
        },
        lifespan=mcp_app.router.lifespan_context if mcp_app is not None else None,
    )
    app.state.manager = manager
    return app
