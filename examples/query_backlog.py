#!/usr/bin/env python
"""List projects and the backlog assigned to you"""
import asyncio
import sys

from dotenv import load_dotenv

from worksync.config import Settings
from worksync.service_manager import ServiceManager
from worksync.services.task_service import TaskStore


async def main():
    # Load environment
    load_dotenv()
    settings = Settings.from_env()
    manager = ServiceManager(settings, TaskStore("sqlite://"))
    client = await manager.get_ado_client()

    print(f"🔗 Organization: {client.session.base_url}\n")

    projects = await client.get_projects()
    print("=" * 70)
    print("📁 PROJECTS")
    print("=" * 70)
    for project in projects:
        print(f"  {project.name} ({project.id})")

    if not projects:
        print("\n  No projects visible to this token")
        return

    project = sys.argv[1] if len(sys.argv) > 1 else projects[0].name
    items = await client.get_backlog_items(
        project,
        states=settings.ado_backlog_states,
        work_item_types=settings.ado_backlog_types
    )

    print(f"\n{'=' * 70}")
    print(f"📋 MY BACKLOG: {project}")
    print("=" * 70)

    if items:
        for idx, item in enumerate(items, 1):
            print(f"\n{idx}. [{item.work_item_type}] {item.title}")
            print(f"   ID: {item.id}")
            print(f"   State: {item.state}")
            print(f"   Priority: {item.priority}")
            if item.tag_list:
                print(f"   Tags: {', '.join(item.tag_list)}")
            print(f"   URL: {item.url}")
    else:
        print("\n  No backlog items assigned to you")


if __name__ == '__main__':
    asyncio.run(main())
