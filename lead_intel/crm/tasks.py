"""Conversion of research action items into tracked tasks."""

from __future__ import annotations

import logging

from lead_intel.db.repository import ResearchRepository
from lead_intel.models import ConversionResult

logger = logging.getLogger(__name__)

TASK_PRIORITY = {"HIGH": "high", "MEDIUM": "medium", "LOW": "low"}


class ActionItemNotFound(LookupError):
    pass


def convert_action_item(repo: ResearchRepository, action_item_id: int) -> ConversionResult:
    """Create a task for an action item. Converting twice returns the first task."""
    item = repo.get_action_item(action_item_id)
    if item is None:
        raise ActionItemNotFound(f"Action item {action_item_id} not found")
    if item.task_id is not None:
        return ConversionResult(action_item_id=action_item_id, task_id=item.task_id, created=False)

    job = repo.get_job(item.job_id)
    if job is None:
        raise ActionItemNotFound(f"Research job for action item {action_item_id} not found")

    task_id = repo.create_task_for_action_item(
        action_item_id,
        user_id=job.user_id,
        title=item.description[:200],
        description=f"Generated from research: {job.prompt}",
        priority=TASK_PRIORITY.get(item.priority, "medium"),
    )
    if task_id is None:
        current = repo.get_action_item(action_item_id)
        return ConversionResult(action_item_id=action_item_id, task_id=current.task_id, created=False)

    logger.info("Converted action item %d to task %d", action_item_id, task_id)
    return ConversionResult(action_item_id=action_item_id, task_id=task_id, created=True)
