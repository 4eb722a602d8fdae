"""
MCP server tests
Tools are called in-process through fastmcp.Client
"""
import pytest
from unittest.mock import AsyncMock, patch

from fastmcp import Client
from fastmcp.exceptions import ToolError

from worksync.config import Settings
from worksync.models import Project, WorkItem
from worksync.server import build_server
from worksync.service_manager import ServiceManager
from worksync.services.ado_service import AdoClient
from worksync.services.task_service import TaskStore


@pytest.fixture
def manager():
    settings = Settings(database_url="sqlite://", ado_organization="contoso", ado_pat="pat")
    return ServiceManager(settings, TaskStore("sqlite://"))


@pytest.fixture
def mcp(manager):
    return build_server(manager)


class TestToolRegistration:
    """Test the tools the server exposes"""

    @pytest.mark.asyncio
    async def test_tools_listed(self, mcp):
        """Test every tool is registered"""
        async with Client(mcp) as client:
            tools = await client.list_tools()

        assert {tool.name for tool in tools} == {
            'list_projects',
            'get_backlog_items',
            'get_work_item_details',
            'get_recent_activity',
            'test_connection',
            'list_tasks',
            'get_task_recommendations',
            'analyze_task',
            'health_check',
        }


class TestTaskTools:
    """Test tools backed by the task store"""

    @pytest.mark.asyncio
    async def test_analyze_task(self, mcp):
        """Test keyword analysis through MCP"""
        async with Client(mcp) as client:
            result = await client.call_tool('analyze_task', {'title': 'Implement SQL migration'})

        assert result.data['complexity_score'] == 0.8
        assert 'database' in result.data['tags']

    @pytest.mark.asyncio
    async def test_analyze_task_empty_title(self, mcp):
        """Test an empty title is a tool error"""
        async with Client(mcp) as client:
            with pytest.raises(ToolError):
                await client.call_tool('analyze_task', {'title': '  '})

    @pytest.mark.asyncio
    async def test_list_tasks_uses_default_user(self, manager, mcp):
        """Test tasks are listed for the default user"""
        manager.store.create_task(manager.default_user_id, {'title': 'Mine', 'priority': 'high'})
        manager.store.create_task(manager.default_user_id, {'title': 'Other', 'priority': 'low'})

        async with Client(mcp) as client:
            result = await client.call_tool('list_tasks', {'priority': 'high'})

        assert [t['title'] for t in result.data['tasks']] == ['Mine']
        assert result.data['pagination']['total'] == 1

    @pytest.mark.asyncio
    async def test_list_tasks_invalid_status(self, mcp):
        """Test unknown statuses are rejected"""
        async with Client(mcp) as client:
            with pytest.raises(ToolError):
                await client.call_tool('list_tasks', {'status': 'someday'})

    @pytest.mark.asyncio
    async def test_recommendations(self, manager, mcp):
        """Test priority recommendations rank by score"""
        manager.store.create_task(manager.default_user_id, {'title': 'Low', 'priority': 'low'})
        manager.store.create_task(manager.default_user_id, {'title': 'Critical', 'priority': 'critical'})

        async with Client(mcp) as client:
            result = await client.call_tool('get_task_recommendations', {'limit': 1})

        recommendations = result.structured_content['result']
        assert len(recommendations) == 1
        assert recommendations[0]['task']['title'] == 'Critical'

    @pytest.mark.asyncio
    async def test_health_check(self, mcp):
        """Test health check reports ADO configuration"""
        async with Client(mcp) as client:
            result = await client.call_tool('health_check', {})

        assert result.data['status'] == 'healthy'
        assert result.data['ado']['organization'] == 'contoso'
        assert result.data['ado']['configured'] is True


class TestAdoTools:
    """Test tools backed by the ADO client"""

    @pytest.mark.asyncio
    async def test_list_projects(self, mcp):
        """Test projects are returned as dictionaries"""
        projects = [Project(id='p1', name='Fabrikam')]
        with patch.object(AdoClient, 'get_projects', new=AsyncMock(return_value=projects)):
            async with Client(mcp) as client:
                result = await client.call_tool('list_projects', {})

        assert result.structured_content['result'][0]['name'] == 'Fabrikam'

    @pytest.mark.asyncio
    async def test_get_backlog_items(self, mcp):
        """Test comma-separated filters are split and validated"""
        get_backlog = AsyncMock(return_value=[WorkItem(id=7, title='Crash on save')])
        with patch.object(AdoClient, 'get_backlog_items', new=get_backlog):
            async with Client(mcp) as client:
                result = await client.call_tool('get_backlog_items', {
                    'project_id': 'Fabrikam', 'states': 'New, Active', 'top': 5,
                })

        assert result.data['total_count'] == 1
        assert result.data['backlog_items'][0]['id'] == 7
        assert get_backlog.call_args.kwargs['states'] == ['New', 'Active']
        assert get_backlog.call_args.kwargs['top'] == 5

    @pytest.mark.asyncio
    async def test_get_backlog_items_default_filters(self, mcp):
        """Test omitted filters use the defaults and empty ones clear them"""
        get_backlog = AsyncMock(return_value=[])
        with patch.object(AdoClient, 'get_backlog_items', new=get_backlog):
            async with Client(mcp) as client:
                await client.call_tool('get_backlog_items', {'project_id': 'Fabrikam'})
                defaults = get_backlog.call_args.kwargs
                await client.call_tool('get_backlog_items', {'project_id': 'Fabrikam', 'states': '', 'types': ''})
                cleared = get_backlog.call_args.kwargs

        assert defaults['states'] == ['Started', 'Committed', 'Proposed', 'Active']
        assert defaults['work_item_types'] == ['Scenario', 'Deliverable', 'Task', 'Bug', 'Task Group']
        assert cleared['states'] == []
        assert cleared['work_item_types'] == []

    @pytest.mark.asyncio
    async def test_get_backlog_items_invalid_top(self, mcp):
        """Test top is bounded"""
        async with Client(mcp) as client:
            with pytest.raises(ToolError):
                await client.call_tool('get_backlog_items', {'project_id': 'Fabrikam', 'top': 500})

    @pytest.mark.asyncio
    async def test_work_item_resource(self, mcp):
        """Test the work item resource renders markdown"""
        work_item = WorkItem(id=42, title='Crash', work_item_type='Bug', state='Active')
        with patch.object(AdoClient, 'get_work_item', new=AsyncMock(return_value=work_item)):
            async with Client(mcp) as client:
                contents = await client.read_resource('workitem://42')

        assert contents[0].text.startswith('# [42] Crash')
