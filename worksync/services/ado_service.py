"""
Azure DevOps service
Reads projects, backlog items, work items and recent activity through the
azure-devops SDK clients (REST API v7.0)
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

from azure.devops.connection import Connection
from azure.devops.v7_0.work_item_tracking.models import Wiql
from msrest.exceptions import ClientException

from ..auth import AdoSession
from ..constants import ExpandOptions, FieldNames, QueryLimits
from ..decorators import (
    ado_error_from_exception,
    ado_operation,
    validate_work_item_id,
    with_timeout,
)
from ..errors import (
    AdoNotInitializedError,
    ProjectNotFoundError,
    WorkItemNotFoundError,
    WorkSyncError,
    map_status_code_to_error,
)
from ..models import ActivityEntry, Project, WorkItem
from ..transform import transform_activity, transform_project, transform_work_item
from ..validation import is_guid
from ..wiql import build_activity_query, build_query

logger = logging.getLogger(__name__)

USER_AGENT = 'worksync'


def _error_message(response) -> Optional[str]:
    """Pull the upstream ``message`` out of an ADO error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        return body.get('message')
    return None


def _retry_after(response) -> Optional[int]:
    value = response.headers.get('Retry-After')
    if not value:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Could not parse Retry-After header: {value}")
        return None


def raise_for_status(response, *args, **kwargs):
    """
    Response hook installed on the SDK clients.

    Maps failed responses onto WorkSync errors before the SDK turns them
    into its own exceptions, which carry no status code.

    Raises:
        AdoRequestError: Subclass matching the upstream status
    """
    status_code = response.status_code

    # ADO answers a rejected PAT with a 203 sign-in page
    if status_code == 203:
        raise map_status_code_to_error(401)

    if 200 <= status_code < 300:
        return response

    extra = {}
    if status_code == 429:
        extra['retry_after'] = _retry_after(response)
    raise map_status_code_to_error(
        status_code,
        message=_error_message(response),
        **extra
    )


def work_item_payload(work_item, base_url: str) -> Dict[str, Any]:
    """
    Convert an SDK WorkItem into the REST JSON shape the transformers read.

    The SDK drops ``_links``, so the edit page link is rebuilt from the
    item's project.
    """
    fields = dict(work_item.fields or {})
    raw = {
        'id': work_item.id,
        'rev': work_item.rev,
        'fields': fields,
        'url': work_item.url,
    }
    project = fields.get(FieldNames.TEAM_PROJECT)
    if project and work_item.id is not None:
        href = f"{base_url}/{quote(project)}/_workitems/edit/{work_item.id}"
        raw['_links'] = {'html': {'href': href}}
    return raw


class AdoClient:
    """
    Client for one Azure DevOps organization.

    Every call is authenticated with the session it was built with; SDK calls
    block, so they run in a worker thread to keep the event loop free.

    Example:
        client = AdoClient(AdoSession("contoso", pat))
        items = await client.get_backlog_items("Fabrikam", states=["Active"], top=5)
    """

    def __init__(self, session: AdoSession, timeout_seconds: float = 30):
        """
        Initialize the client

        Args:
            session: Credentials and organization to talk to
            timeout_seconds: Per-request timeout (default: 30)
        """
        self.session = session
        self.timeout_seconds = timeout_seconds
        self._connection = None
        self._core_client = None
        self._wit_client = None

    @property
    def connection(self) -> Connection:
        """Lazy load the SDK connection"""
        if not self.session.is_authenticated():
            raise AdoNotInitializedError()

        if not self._connection:
            self._connection = Connection(
                base_url=self.session.base_url,
                creds=self.session.credentials(),
                user_agent=USER_AGENT
            )
        return self._connection

    def _configure(self, sdk_client):
        config = sdk_client.config
        config.connection.timeout = self.timeout_seconds
        # Failures surface immediately
        config.retry_policy.retries = 0
        config.retry_policy.policy.status_forcelist = []
        config.hooks.append(raise_for_status)
        return sdk_client

    @property
    def core_client(self):
        """Lazy load the core client (blocking on first use)"""
        if not self._core_client:
            self._core_client = self._configure(self.connection.clients.get_core_client())
        return self._core_client

    @property
    def wit_client(self):
        """Lazy load the work item tracking client (blocking on first use)"""
        if not self._wit_client:
            self._wit_client = self._configure(
                self.connection.clients.get_work_item_tracking_client()
            )
        return self._wit_client

    # ------------------------------------------------------------------
    # SDK calls (blocking)
    # ------------------------------------------------------------------

    def _fetch_projects(self) -> List[Project]:
        projects = self.core_client.get_projects() or []
        return [transform_project(vars(project)) for project in projects]

    def _query_work_item_ids(self, query: str, top: int) -> List[int]:
        result = self.wit_client.query_by_wiql(Wiql(query=query), top=top)
        return [reference.id for reference in result.work_items or []]

    def _fetch_work_items(self, ids: Sequence[int], expand: Optional[str] = None) -> List[Dict[str, Any]]:
        """Fetch work items in batches the workitems endpoint accepts."""
        items = []
        for start in range(0, len(ids), QueryLimits.BATCH_SIZE):
            batch = list(ids[start:start + QueryLimits.BATCH_SIZE])
            work_items = self.wit_client.get_work_items(ids=batch, expand=expand) or []
            items.extend(work_item_payload(wi, self.session.base_url) for wi in work_items)
        return items

    def _fetch_work_item(self, work_item_id: int) -> Dict[str, Any]:
        work_item = self.wit_client.get_work_item(work_item_id, expand=ExpandOptions.ALL)
        return work_item_payload(work_item, self.session.base_url)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_project_name(self, project_id: str) -> str:
        """Map a project GUID to its name; names pass through unchanged."""
        if not is_guid(project_id):
            return project_id

        for project in await asyncio.to_thread(self._fetch_projects):
            if project.id and project.id.lower() == project_id.lower():
                logger.debug(f"Resolved project {project_id} to '{project.name}'")
                return project.name
        raise ProjectNotFoundError(project_id)

    async def _run_wiql(self, project_name: str, query: str, top: int) -> List[int]:
        """
        Raises:
            ProjectNotFoundError: If ADO answers 404 for the project
        """
        try:
            ids = await asyncio.to_thread(self._query_work_item_ids, query, top)
        except WorkItemNotFoundError as e:
            raise ProjectNotFoundError(project_name) from e
        return ids[:top]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @ado_operation("fetch ADO projects")
    async def get_projects(self) -> List[Project]:
        """
        Get projects accessible to the session's token

        Returns:
            List of projects
        """
        projects = await asyncio.to_thread(self._fetch_projects)
        logger.info(f"Retrieved {len(projects)} projects from ADO")
        return projects

    @validate_work_item_id
    @ado_operation("fetch work item")
    async def get_work_item(self, work_item_id: int) -> WorkItem:
        """
        Get full details of a specific work item

        Args:
            work_item_id: Work item ID

        Returns:
            Normalized work item

        Raises:
            WorkItemNotFoundError: If the work item doesn't exist or isn't visible
        """
        try:
            raw = await asyncio.to_thread(self._fetch_work_item, work_item_id)
        except WorkItemNotFoundError as e:
            raise WorkItemNotFoundError(
                message=e.message,
                work_item_id=work_item_id,
                original_error=e
            )

        work_item = transform_work_item(raw)
        logger.info(f"Retrieved work item {work_item_id}: {work_item.title}")
        return work_item

    @ado_operation("fetch backlog items")
    async def get_backlog_items(
        self,
        project_id: str,
        assigned_to_me: bool = True,
        states: Optional[Sequence[str]] = None,
        work_item_types: Optional[Sequence[str]] = None,
        top: int = QueryLimits.DEFAULT_BACKLOG_TOP,
        order_by: Optional[Sequence[Tuple[str, str]]] = None
    ) -> List[WorkItem]:
        """
        Get backlog items for a project

        Args:
            project_id: Project name or GUID
            assigned_to_me: Only items assigned to the token owner (default: True)
            states: State filter; empty or None applies no state filter
            work_item_types: Type filter; empty or None applies no type filter
            top: Maximum number of items to return
            order_by: Optional (field, direction) ordering

        Returns:
            Work items in query order

        Raises:
            ProjectNotFoundError: If the project doesn't exist or a GUID matches none
            ValidationError: If a filter value is invalid
        """
        project_name = await self._resolve_project_name(project_id)
        query = build_query(
            project_name,
            assigned_to_me=assigned_to_me,
            states=states,
            work_item_types=work_item_types,
            order_by=order_by
        )
        logger.debug(f"Backlog WIQL for {project_name}: {query}")

        ids = await self._run_wiql(project_name, query, top)
        if not ids:
            logger.info(f"No backlog items matched in project {project_name}")
            return []

        raw_items = await asyncio.to_thread(self._fetch_work_items, ids, ExpandOptions.RELATIONS)
        work_items = [transform_work_item(raw) for raw in raw_items]
        logger.info(f"Retrieved {len(work_items)} backlog items from {project_name}")
        return work_items

    @ado_operation("fetch recent activity")
    async def get_recent_activity(
        self,
        project_id: str,
        days: int = QueryLimits.DEFAULT_ACTIVITY_DAYS,
        top: int = QueryLimits.DEFAULT_ACTIVITY_TOP
    ) -> List[ActivityEntry]:
        """
        Get work items changed in a project during the last ``days`` days

        Args:
            project_id: Project name or GUID
            days: Look-back window in days (default: 7)
            top: Maximum number of entries (default: 10)

        Returns:
            Activity entries, most recent first
        """
        project_name = await self._resolve_project_name(project_id)
        query = build_activity_query(project_name, days)

        ids = await self._run_wiql(project_name, query, top)
        if not ids:
            return []

        raw_items = await asyncio.to_thread(self._fetch_work_items, ids)
        activity = [transform_activity(raw) for raw in raw_items]
        logger.info(f"Retrieved {len(activity)} activity entries for {project_name}")
        return activity

    @with_timeout()
    async def _timed_projects(self) -> List[Project]:
        try:
            return await asyncio.to_thread(self._fetch_projects)
        except ClientException as e:
            raise ado_error_from_exception(e)

    async def test_connection(self) -> Dict[str, Any]:
        """
        Check that the organization is reachable with the session's token

        Never raises for upstream failures; the outcome is reported in the
        returned dictionary.

        Returns:
            ``{success, message, userInfo}`` or ``{success: False, message, error}``
        """
        try:
            projects = await self._timed_projects()
        except WorkSyncError as e:
            logger.error(f"ADO connection test failed: {e.message}")
            return {
                'success': False,
                'message': f"Connection failed: {e.message}",
                'error': e.message
            }

        logger.info("ADO connection test successful")
        return {
            'success': True,
            'message': 'Successfully connected to Azure DevOps',
            'userInfo': {
                'organization': self.session.organization,
                'projectCount': len(projects),
                'baseURL': self.session.base_url
            }
        }
