# po_lifecycle/services/task_service.py
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence
import logging

from sqlalchemy.orm import Session

from po_lifecycle.core.task_rules import derive_tasks
from po_lifecycle.exceptions import NotFoundError, TaskGenerationError, ValidationError
from po_lifecycle.models import POTask, PurchaseOrder, TaskPriority, TaskSource
from po_lifecycle.policy import EnginePolicy, DEFAULT_POLICY

logger = logging.getLogger(__name__)

PRIORITY_RANK = {
    TaskPriority.URGENT.value: 0,
    TaskPriority.HIGH.value: 1,
    TaskPriority.NORMAL.value: 2,
    TaskPriority.LOW.value: 3,
}

class TaskService:
    """Service generating and managing PO tasks."""

    def __init__(self, session: Session, policy: Optional[EnginePolicy] = None):
        """Initialize the task service.

        Args:
            session: Database session
            policy: Engine policy (defaults to built-in lead days)
        """
        self.session = session
        self.policy = policy or DEFAULT_POLICY

    def _get_order(self, po_number: str) -> Optional[PurchaseOrder]:
        return self.session.query(PurchaseOrder).filter(PurchaseOrder.po_number == po_number).first()

    def _get_task(self, task_id: int) -> POTask:
        task = self.session.get(POTask, task_id)
        if not task:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def generate_tasks(
        self,
        po_number: str,
        today: Optional[date] = None,
        created_by: str = 'system'
    ) -> List[POTask]:
        """Regenerate the auto-generated tasks of a PO.

        Open auto-generated tasks are deleted and recomputed. Manual tasks
        and completed tasks are kept, and a rule whose task was already
        completed is not raised again.

        Args:
            po_number: PO number
            today: Reference date (defaults to today)
            created_by: Value stored in created_by

        Returns:
            List of created tasks (empty if the PO does not exist)

        Raises:
            TaskGenerationError: If the tasks could not be written
        """
        today = today or date.today()
        order = self._get_order(po_number)
        if not order:
            logger.warning(f"Cannot generate tasks: PO {po_number} not found")
            return []

        drafts = derive_tasks(
            order,
            order.inspections,
            order.compliance_styles,
            today,
            self.policy,
            milestones=order.milestones,
        )

        try:
            (
                self.session.query(POTask)
                .filter(POTask.po_number == po_number)
                .filter(POTask.is_completed.is_(False))
                .filter(POTask.task_source != TaskSource.MANUAL.value)
                .delete(synchronize_session='fetch')
            )

            completed_keys = {
                task.task_key for task in
                self.session.query(POTask)
                .filter(POTask.po_number == po_number)
                .filter(POTask.is_completed.is_(True))
                .all()
            }

            created = []
            for draft in drafts:
                if draft.task_key in completed_keys:
                    continue
                task = POTask(
                    po_number=po_number,
                    task_source=draft.task_source,
                    task_type=draft.task_type,
                    title=draft.title,
                    description=draft.description,
                    due_date=draft.due_date,
                    priority=draft.priority,
                    related_entity_type=draft.related_entity_type,
                    related_entity_id=draft.related_entity_id,
                    is_completed=False,
                    created_by=created_by,
                )
                self.session.add(task)
                created.append(task)

            self.session.commit()

        except Exception as e:
            self.session.rollback()
            raise TaskGenerationError(f"Failed to generate tasks for PO {po_number}: {str(e)}")

        logger.debug(f"Generated {len(created)} tasks for PO {po_number}")
        return created

    def regenerate_tasks(self, po_numbers: Sequence[str], today: Optional[date] = None) -> Dict:
        """Regenerate tasks for many POs, continuing past failures.

        Args:
            po_numbers: PO numbers to process
            today: Reference date (defaults to today)

        Returns:
            Dictionary with per-PO results and totals
        """
        results = {
            'results': [],
            'total_generated': 0,
            'errors': 0
        }

        for po_number in po_numbers:
            try:
                created = self.generate_tasks(po_number, today=today)
                results['results'].append({'po_number': po_number, 'tasks_generated': len(created), 'error': None})
                results['total_generated'] += len(created)
            except Exception as e:
                self.session.rollback()
                logger.error(f"Task regeneration failed for PO {po_number}: {str(e)}")
                results['results'].append({'po_number': po_number, 'tasks_generated': 0, 'error': str(e)})
                results['errors'] += 1

        logger.info(
            f"Regenerated tasks for {len(po_numbers)} POs: "
            f"{results['total_generated']} tasks, {results['errors']} errors"
        )
        return results

    def get_tasks(self, po_number: str, include_completed: bool = True) -> List[POTask]:
        """Tasks of a PO, open first, then by priority and due date."""
        query = self.session.query(POTask).filter(POTask.po_number == po_number)
        if not include_completed:
            query = query.filter(POTask.is_completed.is_(False))

        return sorted(
            query.all(),
            key=lambda t: (
                bool(t.is_completed),
                PRIORITY_RANK.get(t.priority, len(PRIORITY_RANK)),
                t.due_date or date.max,
                t.id,
            )
        )

    def create_task(
        self,
        po_number: str,
        title: str,
        task_type: str = 'custom',
        description: Optional[str] = None,
        due_date: Optional[date] = None,
        priority: str = TaskPriority.NORMAL.value,
        created_by: Optional[str] = None
    ) -> POTask:
        """Create a manual task.

        Raises:
            NotFoundError: If the PO does not exist
            ValidationError: If the priority is unknown or the title is empty
        """
        if priority not in PRIORITY_RANK:
            raise ValidationError(f"Invalid priority: {priority}", details={'valid': list(PRIORITY_RANK)})
        if not title or not title.strip():
            raise ValidationError("Task title is required")
        if not self._get_order(po_number):
            raise NotFoundError(f"PO {po_number} not found")

        task = POTask(
            po_number=po_number,
            task_source=TaskSource.MANUAL.value,
            task_type=task_type,
            title=title.strip(),
            description=description,
            due_date=due_date,
            priority=priority,
            is_completed=False,
            created_by=created_by,
        )

        try:
            self.session.add(task)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            raise TaskGenerationError(f"Failed to create task: {str(e)}")

        return task

    def complete_task(self, task_id: int, completed_by: str, now: Optional[datetime] = None) -> POTask:
        """Mark a task completed.

        Raises:
            NotFoundError: If the task does not exist
        """
        task = self._get_task(task_id)
        task.is_completed = True
        task.completed_at = now or datetime.now()
        task.completed_by = completed_by
        self.session.commit()
        return task

    def uncomplete_task(self, task_id: int) -> POTask:
        """Reopen a completed task."""
        task = self._get_task(task_id)
        task.is_completed = False
        task.completed_at = None
        task.completed_by = None
        self.session.commit()
        return task

    def delete_task(self, task_id: int) -> bool:
        task = self._get_task(task_id)
        self.session.delete(task)
        self.session.commit()
        return True
