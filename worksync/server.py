"""
WorkSync server
Serves the REST API and an MCP server over the same task and ADO services
"""
import asyncio
import logging
import os
import sys
from typing import Optional, List, Dict, Any

from dotenv import load_dotenv
from fastmcp import FastMCP, Context

from .analysis import analyze_task_content
from .api import create_app
from .config import Settings
from .constants import SERVICE_VERSION, QueryLimits, TaskPriority, TaskStatus
from .log_sanitizer import configure_logging
from .models import isoformat, utcnow
from .scoring import recommend
from .service_manager import ServiceManager
from .validation import ValidationError, parse_csv, validate_backlog_top, validate_work_item_id

logger = logging.getLogger(__name__)


async def _info(ctx: Optional[Context], message: str) -> None:
    if ctx is not None:
        await ctx.info(message)


def build_server(manager: ServiceManager) -> FastMCP:
    """
    Create the MCP server exposing WorkSync tools

    Args:
        manager: Application context shared with the REST API

    Returns:
        FastMCP server instance
    """
    mcp = FastMCP(
        name="WorkSync",
        instructions=(
            "Read Azure DevOps projects, backlogs and work items, and plan "
            "local tasks with rule-based priority recommendations."
        ),
    )

    # ========================================================================
    # AZURE DEVOPS TOOLS
    # ========================================================================

    @mcp.tool()
    async def list_projects(ctx: Context = None) -> List[Dict[str, Any]]:
        """
        List the Azure DevOps projects the configured credentials can see.

        Returns:
            List of projects with id, name, description, url, state and visibility
        """
        client = await manager.get_ado_client()
        await _info(ctx, f"Fetching projects for organization: {client.session.organization}...")

        projects = await client.get_projects()

        await _info(ctx, f"Found {len(projects)} projects")
        return [project.to_dict() for project in projects]

    @mcp.tool()
    async def get_backlog_items(
        project_id: str,
        states: Optional[str] = None,
        types: Optional[str] = None,
        top: int = QueryLimits.DEFAULT_BACKLOG_TOP,
        assigned_to_me: bool = True,
        ctx: Context = None
    ) -> Dict[str, Any]:
        """
        Get backlog items for a project, highest priority first.

        Args:
            project_id: Project name or GUID
            states: Optional comma-separated states (e.g., "New,Active")
            types: Optional comma-separated work item types (e.g., "Bug,Task")
            top: Maximum number of items (1-50)
            assigned_to_me: Only items assigned to the authenticated user

        Returns:
            Dictionary with backlog_items and total_count
        """
        client = await manager.get_ado_client()
        state_list = parse_csv(states, "states")
        type_list = parse_csv(types, "types")
        if state_list is None:
            state_list = manager.settings.ado_backlog_states
        if type_list is None:
            type_list = manager.settings.ado_backlog_types
        top = validate_backlog_top(top)

        await _info(ctx, f"Fetching backlog items for project: {project_id}...")

        items = await client.get_backlog_items(
            project_id,
            assigned_to_me=assigned_to_me,
            states=state_list,
            work_item_types=type_list,
            top=top
        )

        await _info(ctx, f"Found {len(items)} backlog items")
        return {
            "backlog_items": [item.to_dict() for item in items],
            "total_count": len(items),
        }

    @mcp.tool()
    async def get_work_item_details(work_item_id: int, ctx: Context = None) -> Dict[str, Any]:
        """
        Get complete details of a work item.

        Args:
            work_item_id: ID of the work item

        Returns:
            Normalized work item including description, tags and url
        """
        work_item_id = validate_work_item_id(work_item_id)
        client = await manager.get_ado_client()
        await _info(ctx, f"Fetching work item {work_item_id}...")

        work_item = await client.get_work_item(work_item_id)
        return work_item.to_dict()

    @mcp.tool()
    async def get_recent_activity(
        project_id: str,
        days: int = QueryLimits.DEFAULT_ACTIVITY_DAYS,
        top: int = QueryLimits.DEFAULT_ACTIVITY_TOP,
        ctx: Context = None
    ) -> List[Dict[str, Any]]:
        """
        Get work items changed recently in a project.

        Args:
            project_id: Project name or GUID
            days: Look-back window in days
            top: Maximum number of entries

        Returns:
            Activity entries, most recent first
        """
        client = await manager.get_ado_client()
        await _info(ctx, f"Fetching activity from the last {days} days for project: {project_id}...")

        activity = await client.get_recent_activity(project_id, days=days, top=top)
        return [entry.to_dict() for entry in activity]

    @mcp.tool()
    async def test_connection(ctx: Context = None) -> Dict[str, Any]:
        """
        Check that the configured Azure DevOps credentials work.

        Returns:
            Dictionary with success, message and user info or error
        """
        client = await manager.get_ado_client()
        result = await client.test_connection()
        await _info(ctx, result['message'])
        return result

    # ========================================================================
    # TASK TOOLS
    # ========================================================================

    @mcp.tool()
    async def list_tasks(
        status: Optional[str] = None,
        priority: Optional[str] = None,
        limit: int = 50,
        ctx: Context = None
    ) -> Dict[str, Any]:
        """
        List the default user's local tasks, newest first.

        Args:
            status: Optional filter: todo, in_progress, done or blocked
            priority: Optional filter: low, medium, high or critical
            limit: Maximum number of tasks

        Returns:
            Dictionary with tasks and pagination
        """
        if status is not None and status not in TaskStatus.ALL:
            raise ValidationError(f"Invalid status: '{status}'", field="status")
        if priority is not None and priority not in TaskPriority.ALL:
            raise ValidationError(f"Invalid priority: '{priority}'", field="priority")

        user_id = await asyncio.to_thread(lambda: manager.default_user_id)
        tasks, pagination = await asyncio.to_thread(
            manager.store.list_tasks,
            user_id,
            status=status,
            priority=priority,
            limit=limit
        )
        await _info(ctx, f"Found {pagination['total']} tasks")
        return {
            "tasks": [task.to_dict() for task in tasks],
            "pagination": pagination,
        }

    @mcp.tool()
    async def get_task_recommendations(
        type: str = "priority",
        limit: int = 5,
        ctx: Context = None
    ) -> List[Dict[str, Any]]:
        """
        Recommend which local tasks to work on next.

        Args:
            type: Strategy: "priority", "quick_wins" or "overdue"
            limit: Maximum number of recommendations

        Returns:
            Recommendations with reasoning and confidence score
        """
        user_id = await asyncio.to_thread(lambda: manager.default_user_id)
        tasks = await asyncio.to_thread(manager.store.active_tasks, user_id)
        recommendations = recommend(tasks, type, limit)
        await _info(ctx, f"Generated {len(recommendations)} {type} recommendations")
        return [rec.to_dict() for rec in recommendations]

    @mcp.tool()
    async def analyze_task(
        title: str,
        description: Optional[str] = None,
        ctx: Context = None
    ) -> Dict[str, Any]:
        """
        Estimate complexity, effort and tags for a task description.

        Args:
            title: Task title
            description: Optional longer description

        Returns:
            Dictionary with complexity_score, estimated_hours,
            suggested_priority, tags and execution_guidance
        """
        if not title or not title.strip():
            raise ValidationError("Task title is required", field="title")
        return analyze_task_content(title, description)

    # ========================================================================
    # RESOURCES
    # ========================================================================

    @mcp.resource("workitem://{work_item_id}")
    async def workitem_resource(work_item_id: str) -> str:
        """Provides a readable summary of a work item"""
        client = await manager.get_ado_client()
        wi = await client.get_work_item(validate_work_item_id(work_item_id))

        return f"""# [{wi.id}] {wi.title}
**Type:** {wi.work_item_type}
**State:** {wi.state}
**Assigned To:** {wi.assigned_to}
**Priority:** {wi.priority}
**Tags:** {wi.tags or 'None'}

## Description
{wi.description or 'No description'}
"""

    # ========================================================================
    # MONITORING
    # ========================================================================

    @mcp.tool()
    async def health_check(ctx: Context = None) -> Dict[str, Any]:
        """
        Get server health status for monitoring.

        Returns:
            Dictionary with health status, version and ADO configuration
        """
        return {
            "status": "healthy",
            "service": "WorkSync",
            "version": SERVICE_VERSION,
            "timestamp": isoformat(utcnow()),
            "ado": manager.ado_status(),
            "statistics": manager.get_statistics(),
        }

    return mcp


def main() -> None:
    """Entry point: serve the REST API with MCP mounted at /mcp, or MCP over stdio."""
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    manager = ServiceManager(settings)
    mcp = build_server(manager)

    transport_mode = os.getenv("MCP_TRANSPORT", "http").lower()
    if transport_mode == "stdio":
        print("Starting WorkSync MCP server in STDIO mode", file=sys.stderr)
        mcp.run()
        return

    import uvicorn

    app = create_app(manager, mcp_app=mcp.http_app(path='/'))
    logger.info(f"Starting WorkSync on http://{settings.host}:{settings.port}")
    logger.info(f"MCP endpoint: http://localhost:{settings.port}/mcp")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
