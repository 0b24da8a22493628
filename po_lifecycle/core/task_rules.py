# po_lifecycle/core/task_rules.py
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Tuple

from ..models import TaskPriority, TaskSource
from ..policy import EnginePolicy
from ..utils.date_utils import days_before
from .risk import (
    INSPECTION_FINAL, INSPECTION_INITIAL, INSPECTION_INLINE, is_booked, is_failed_result
)

OPEN_COMPLIANCE_STATUSES = ('EXPIRED', 'OUTSTANDING')
UPCOMING_MILESTONE_DAYS = 7


@dataclass
class TaskDraft:
    """A task produced by a rule, not yet persisted."""
    task_source: str
    task_type: str
    title: str
    description: str
    due_date: date
    priority: str
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None

    @property
    def task_key(self) -> Tuple[str, str, Optional[int]]:
        return (self.task_source, self.task_type, self.related_entity_id)


def _inspection_tasks(order, inspections, today, policy) -> List[TaskDraft]:
    tasks = []
    po_number = order.po_number
    ship_date = order.original_ship_date

    if ship_date:
        rules = (
            (INSPECTION_INITIAL, 'book_initial', policy.initial_inspection_lead_days, TaskPriority.HIGH),
            (INSPECTION_INLINE, 'book_inline', policy.inline_inspection_lead_days, TaskPriority.HIGH),
            (INSPECTION_FINAL, 'book_final', policy.final_inspection_lead_days, TaskPriority.URGENT),
        )
        for inspection_type, task_type, lead_days, priority in rules:
            if is_booked(inspections, inspection_type):
                continue
            tasks.append(TaskDraft(
                task_source=TaskSource.INSPECTION.value,
                task_type=task_type,
                title=f"Book {inspection_type} Inspection",
                description=f"{inspection_type} inspection needs to be scheduled for PO {po_number}",
                due_date=days_before(ship_date, lead_days),
                priority=priority.value,
            ))

    for inspection in inspections:
        if not is_failed_result(inspection.result):
            continue
        tasks.append(TaskDraft(
            task_source=TaskSource.INSPECTION.value,
            task_type='follow_up_failed',
            title=f"Follow up on Failed {inspection.inspection_type} Inspection",
            description=(
                f"Inspection failed on {inspection.inspection_date}. "
                f"Review findings and coordinate corrections."
            ),
            due_date=today,
            priority=TaskPriority.URGENT.value,
            related_entity_type='inspection',
            related_entity_id=inspection.id,
        ))

    return tasks


def _compliance_tasks(compliance_styles, today) -> List[TaskDraft]:
    tasks = []
    for compliance in compliance_styles:
        checks = (
            ('mandatory', compliance.mandatory_status, compliance.mandatory_expiry_date, TaskPriority.URGENT),
            ('performance', compliance.performance_status, compliance.performance_expiry_date, TaskPriority.HIGH),
        )
        for test_kind, status, expiry_date, priority in checks:
            if (status or '').strip().upper() not in OPEN_COMPLIANCE_STATUSES:
                continue
            tasks.append(TaskDraft(
                task_source=TaskSource.COMPLIANCE.value,
                task_type=f"follow_up_{test_kind}_test",
                title=f"Follow up on {test_kind.capitalize()} Test",
                description=(
                    f"{test_kind.capitalize()} test for style {compliance.style} is {status}. "
                    f"Coordinate with vendor."
                ),
                due_date=expiry_date or today,
                priority=priority.value,
                related_entity_type='compliance_style',
                related_entity_id=compliance.id,
            ))
    return tasks


def _shipment_tasks(order, today, policy) -> List[TaskDraft]:
    ship_date = order.original_ship_date
    if not ship_date or order.pts_number:
        return []

    tasks = [TaskDraft(
        task_source=TaskSource.SHIPMENT.value,
        task_type='book_shipment',
        title='Book Shipment',
        description=f"Shipment booking required for PO {order.po_number}. Original ship date: {ship_date}",
        due_date=days_before(ship_date, policy.shipment_booking_lead_days),
        priority=TaskPriority.HIGH.value,
    )]

    if ship_date < today:
        tasks.append(TaskDraft(
            task_source=TaskSource.SHIPMENT.value,
            task_type='follow_up_pts',
            title='Follow up on Overdue Shipment',
            description=f"PO {order.po_number} is overdue (ship date: {ship_date}). No PTS number recorded.",
            due_date=today,
            priority=TaskPriority.URGENT.value,
        ))

    return tasks


def _milestone_tasks(milestones, today) -> List[TaskDraft]:
    tasks = []
    for milestone in milestones:
        target = milestone.target_date
        if milestone.actual_date or not target:
            continue

        days = (target - today).days
        if days < 0:
            days_overdue = -days
            if days_overdue > 14:
                priority = TaskPriority.URGENT
            elif days_overdue > 7:
                priority = TaskPriority.HIGH
            else:
                priority = TaskPriority.NORMAL
            tasks.append(TaskDraft(
                task_source=TaskSource.TIMELINE.value,
                task_type='milestone_overdue',
                title=f"{milestone.milestone} Overdue",
                description=f"{milestone.milestone} was due {target} and is {days_overdue} days overdue.",
                due_date=target,
                priority=priority.value,
                related_entity_type='milestone',
                related_entity_id=milestone.id,
            ))
        elif days <= UPCOMING_MILESTONE_DAYS:
            priority = TaskPriority.HIGH if days <= 3 else TaskPriority.NORMAL
            tasks.append(TaskDraft(
                task_source=TaskSource.TIMELINE.value,
                task_type='milestone_upcoming',
                title=f"{milestone.milestone} Due Soon",
                description=f"{milestone.milestone} is due {target} ({days} days).",
                due_date=target,
                priority=priority.value,
                related_entity_type='milestone',
                related_entity_id=milestone.id,
            ))
    return tasks


def derive_tasks(
    order,
    inspections: Iterable,
    compliance_styles: Iterable,
    today: date,
    policy: EnginePolicy,
    milestones: Iterable = ()
) -> List[TaskDraft]:
    """Derive the outstanding-action checklist of a PO.

    Pure function of the PO header, its inspections, compliance records and
    timeline milestones. Rules needing an original ship date are skipped
    when it is missing.

    Args:
        order: PurchaseOrder
        inspections: Inspection rows for the PO
        compliance_styles: ComplianceStyle rows for the PO
        today: Reference date
        policy: Engine policy with the lead days
        milestones: POTimelineMilestone rows for the PO

    Returns:
        List of TaskDraft
    """
    inspections = list(inspections)

    tasks = []
    tasks.extend(_inspection_tasks(order, inspections, today, policy))
    tasks.extend(_compliance_tasks(compliance_styles, today))
    tasks.extend(_shipment_tasks(order, today, policy))
    tasks.extend(_milestone_tasks(milestones, today))
    return tasks
