"""
Tests for the task rules and the task service.
"""
import unittest
from datetime import date, timedelta
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from po_lifecycle.core.task_rules import derive_tasks
from po_lifecycle.exceptions import NotFoundError, TaskGenerationError, ValidationError
from po_lifecycle.models import POTask, POTimelineMilestone, PurchaseOrder
from po_lifecycle.policy import EnginePolicy
from po_lifecycle.services.task_service import TaskService
from po_lifecycle.tests.helpers import TODAY, add_compliance, add_inspection, add_order, make_session

SHIP_DATE = TODAY + timedelta(days=60)


def make_order(**kwargs):
    values = {'po_number': 'PO-1', 'vendor': 'Acme', 'status': 'Open', 'original_ship_date': SHIP_DATE}
    values.update(kwargs)
    return PurchaseOrder(**values)


def inspection(inspection_type, result=None, inspection_id=1):
    return SimpleNamespace(
        id=inspection_id, inspection_type=inspection_type, result=result, inspection_date=TODAY
    )


def milestone(days_from_today, milestone_id=1, actual_date=None, revised=False):
    target = TODAY + timedelta(days=days_from_today)
    return SimpleNamespace(
        id=milestone_id,
        milestone='Fabric Approval',
        target_date=target,
        revised_date=target if revised else None,
        actual_date=actual_date,
    )


def by_type(drafts):
    return {d.task_type: d for d in drafts}


class TestTaskRules(unittest.TestCase):
    def setUp(self):
        self.policy = EnginePolicy()

    def test_inspection_and_shipment_booking(self):
        drafts = by_type(derive_tasks(make_order(), [], [], TODAY, self.policy))

        self.assertEqual(set(drafts), {'book_initial', 'book_inline', 'book_final', 'book_shipment'})
        self.assertEqual(drafts['book_initial'].due_date, SHIP_DATE - timedelta(days=45))
        self.assertEqual(drafts['book_inline'].due_date, SHIP_DATE - timedelta(days=30))
        self.assertEqual(drafts['book_final'].due_date, SHIP_DATE - timedelta(days=14))
        self.assertEqual(drafts['book_final'].priority, 'urgent')
        self.assertEqual(drafts['book_final'].title, 'Book Final Inspection')
        self.assertEqual(drafts['book_shipment'].due_date, SHIP_DATE - timedelta(days=21))
        self.assertEqual(drafts['book_shipment'].priority, 'high')

    def test_booked_inspection_suppresses_task(self):
        drafts = by_type(derive_tasks(
            make_order(), [inspection('Inline Inspection', 'Pending')], [], TODAY, self.policy
        ))
        self.assertNotIn('book_inline', drafts)
        self.assertIn('book_final', drafts)

    def test_failed_inspection_follow_up(self):
        drafts = derive_tasks(
            make_order(original_ship_date=None),
            [inspection('Final', 'Failed - Critical Failure', inspection_id=7)],
            [], TODAY, self.policy
        )

        self.assertEqual(len(drafts), 1)
        follow_up = drafts[0]
        self.assertEqual(follow_up.task_type, 'follow_up_failed')
        self.assertEqual(follow_up.priority, 'urgent')
        self.assertEqual(follow_up.due_date, TODAY)
        self.assertEqual(follow_up.related_entity_type, 'inspection')
        self.assertEqual(follow_up.task_key, ('inspection', 'follow_up_failed', 7))

    def test_missing_ship_date_skips_date_rules(self):
        self.assertEqual(derive_tasks(make_order(original_ship_date=None), [], [], TODAY, self.policy), [])

    def test_overdue_shipment_without_pts(self):
        drafts = by_type(derive_tasks(
            make_order(original_ship_date=TODAY - timedelta(days=1)), [], [], TODAY, self.policy
        ))
        self.assertEqual(drafts['follow_up_pts'].priority, 'urgent')
        self.assertEqual(drafts['follow_up_pts'].due_date, TODAY)

    def test_pts_number_suppresses_shipment_tasks(self):
        drafts = by_type(derive_tasks(
            make_order(original_ship_date=TODAY - timedelta(days=1), pts_number='PTS-1'),
            [], [], TODAY, self.policy
        ))
        self.assertNotIn('book_shipment', drafts)
        self.assertNotIn('follow_up_pts', drafts)

    def test_compliance_follow_ups(self):
        expiry = TODAY + timedelta(days=10)
        compliance = [
            SimpleNamespace(
                id=3, style='STY-1',
                mandatory_status='Expired', mandatory_expiry_date=expiry,
                performance_status='outstanding', performance_expiry_date=None,
            ),
            SimpleNamespace(
                id=4, style='STY-2',
                mandatory_status='Passed', mandatory_expiry_date=None,
                performance_status=None, performance_expiry_date=None,
            ),
        ]
        drafts = by_type(derive_tasks(make_order(original_ship_date=None), [], compliance, TODAY, self.policy))

        self.assertEqual(set(drafts), {'follow_up_mandatory_test', 'follow_up_performance_test'})
        self.assertEqual(drafts['follow_up_mandatory_test'].priority, 'urgent')
        self.assertEqual(drafts['follow_up_mandatory_test'].due_date, expiry)
        self.assertEqual(drafts['follow_up_performance_test'].priority, 'high')
        self.assertEqual(drafts['follow_up_performance_test'].due_date, TODAY)
        self.assertEqual(drafts['follow_up_performance_test'].related_entity_id, 3)

    def test_milestone_tasks(self):
        milestones = [
            milestone(-20, 1),
            milestone(-10, 2),
            milestone(-3, 3),
            milestone(2, 4),
            milestone(5, 5),
            milestone(10, 6),
            milestone(-5, 7, actual_date=TODAY - timedelta(days=6)),
        ]
        drafts = derive_tasks(
            make_order(original_ship_date=None), [], [], TODAY, self.policy, milestones=milestones
        )
        summary = [(d.related_entity_id, d.task_type, d.priority) for d in drafts]

        self.assertEqual(summary, [
            (1, 'milestone_overdue', 'urgent'),
            (2, 'milestone_overdue', 'high'),
            (3, 'milestone_overdue', 'normal'),
            (4, 'milestone_upcoming', 'high'),
            (5, 'milestone_upcoming', 'normal'),
        ])

    def test_milestone_target_prefers_revised_date(self):
        record = POTimelineMilestone(
            milestone='PP Sample', planned_date=TODAY - timedelta(days=30), revised_date=TODAY + timedelta(days=1)
        )
        self.assertEqual(record.target_date, TODAY + timedelta(days=1))


class TestTaskService(unittest.TestCase):
    def setUp(self):
        self.session = make_session()
        add_order(self.session, 'PO-T', original_ship_date=SHIP_DATE)
        add_inspection(self.session, 'PO-T', 'Inline', 'Failed')
        add_order(self.session, 'PO-C', original_ship_date=None)
        add_compliance(self.session, 'PO-C', style='STY-9', mandatory_status='EXPIRED')
        self.session.commit()

        self.service = TaskService(self.session, EnginePolicy())

    def tearDown(self):
        self.session.close()

    def _open_tasks(self, po_number):
        return self.service.get_tasks(po_number, include_completed=False)

    def test_generate_tasks(self):
        created = self.service.generate_tasks('PO-T', today=TODAY)
        self.assertEqual(
            sorted(t.task_type for t in created),
            ['book_final', 'book_initial', 'book_shipment', 'follow_up_failed']
        )
        self.assertTrue(all(t.created_by == 'system' for t in created))

        ordered = [t.task_type for t in self.service.get_tasks('PO-T')]
        self.assertEqual(ordered, ['follow_up_failed', 'book_final', 'book_initial', 'book_shipment'])

    def test_generation_is_idempotent(self):
        self.service.generate_tasks('PO-T', today=TODAY)
        first = sorted((t.task_type, t.due_date) for t in self._open_tasks('PO-T'))

        self.service.generate_tasks('PO-T', today=TODAY)
        second = sorted((t.task_type, t.due_date) for t in self._open_tasks('PO-T'))

        self.assertEqual(first, second)
        self.assertEqual(self.session.query(POTask).filter(POTask.po_number == 'PO-T').count(), 4)

    def test_replaced_tasks_leave_the_session(self):
        first = self.service.generate_tasks('PO-T', today=TODAY)
        self.service.generate_tasks('PO-T', today=TODAY)

        for task in first:
            self.assertNotIn(task, self.session)
        self.assertEqual(len(self._open_tasks('PO-T')), 4)

    def test_manual_tasks_survive_regeneration(self):
        manual = self.service.create_task('PO-T', 'Call vendor about fabric', priority='high', created_by='dana')
        self.service.generate_tasks('PO-T', today=TODAY)
        self.service.generate_tasks('PO-T', today=TODAY)

        tasks = self.service.get_tasks('PO-T')
        self.assertEqual(len(tasks), 5)
        self.assertIn(manual.id, [t.id for t in tasks])

    def test_completed_tasks_are_not_raised_again(self):
        created = self.service.generate_tasks('PO-T', today=TODAY)
        final = next(t for t in created if t.task_type == 'book_final')
        self.service.complete_task(final.id, 'dana')

        recreated = self.service.generate_tasks('PO-T', today=TODAY)
        self.assertNotIn('book_final', [t.task_type for t in recreated])
        self.assertEqual(len(recreated), 3)

        tasks = self.service.get_tasks('PO-T')
        self.assertEqual(len(tasks), 4)
        self.assertTrue(tasks[-1].is_completed)
        self.assertEqual(tasks[-1].completed_by, 'dana')

    def test_compliance_tasks_reference_style(self):
        created = self.service.generate_tasks('PO-C', today=TODAY)
        self.assertEqual(len(created), 1)
        self.assertEqual(created[0].related_entity_type, 'compliance_style')
        self.assertEqual(created[0].due_date, TODAY)

    def test_unknown_po_generates_nothing(self):
        self.assertEqual(self.service.generate_tasks('NOPE', today=TODAY), [])

    def test_write_failure_is_wrapped(self):
        with patch.object(self.session, 'commit', side_effect=RuntimeError('database is locked')):
            with self.assertRaises(TaskGenerationError):
                self.service.generate_tasks('PO-T', today=TODAY)

    def test_regenerate_continues_past_failures(self):
        generate = self.service.generate_tasks

        def flaky(po_number, today=None):
            if po_number == 'PO-BAD':
                raise TaskGenerationError('boom')
            return generate(po_number, today=today)

        with patch.object(self.service, 'generate_tasks', side_effect=flaky):
            results = self.service.regenerate_tasks(['PO-BAD', 'PO-T', 'PO-C'], today=TODAY)

        self.assertEqual(results['errors'], 1)
        self.assertEqual(results['total_generated'], 5)
        self.assertEqual(results['results'][0], {'po_number': 'PO-BAD', 'tasks_generated': 0, 'error': 'boom'})
        self.assertEqual(results['results'][1]['tasks_generated'], 4)

    def test_regenerate_rolls_back_after_a_failed_po(self):
        get_order = self.service._get_order

        def lost_connection(po_number):
            if po_number == 'PO-BAD':
                raise RuntimeError('server closed the connection')
            return get_order(po_number)

        with patch.object(self.service, '_get_order', side_effect=lost_connection), \
                patch.object(self.session, 'rollback', wraps=self.session.rollback) as rollback:
            results = self.service.regenerate_tasks(['PO-BAD', 'PO-T'], today=TODAY)

        rollback.assert_called_once_with()
        self.assertEqual(results['errors'], 1)
        self.assertEqual(results['results'][1]['tasks_generated'], 4)

    def test_create_task_validation(self):
        with self.assertRaises(ValidationError):
            self.service.create_task('PO-T', 'Title', priority='critical')
        with self.assertRaises(ValidationError):
            self.service.create_task('PO-T', '   ')
        with self.assertRaises(NotFoundError):
            self.service.create_task('NOPE', 'Title')

    def test_complete_uncomplete_delete(self):
        task = self.service.create_task('PO-T', 'Check labels', due_date=date(2025, 8, 1))
        task_id = task.id
        self.assertEqual(task.task_source, 'manual')

        self.service.complete_task(task.id, 'lee')
        self.assertTrue(task.is_completed)
        self.assertIsNotNone(task.completed_at)

        self.service.uncomplete_task(task.id)
        self.assertFalse(task.is_completed)
        self.assertIsNone(task.completed_by)

        self.assertTrue(self.service.delete_task(task_id))
        with self.assertRaises(NotFoundError):
            self.service.complete_task(task_id, 'lee')


if __name__ == '__main__':
    pytest.main([__file__])
