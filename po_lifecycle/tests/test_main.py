"""
Tests for the command line entry point.
"""
import unittest
from unittest.mock import patch

import pytest
from sqlalchemy import inspect

from po_lifecycle.db import db
from po_lifecycle.exceptions import NotFoundError
from po_lifecycle.main import main
from po_lifecycle.tests.helpers import add_order, make_session, scope_for


class TestMain(unittest.TestCase):
    def test_no_command_prints_help(self):
        self.assertEqual(main([]), 1)

    def test_init_db_creates_tables(self):
        self.assertEqual(main(['--database-url', 'sqlite://', 'init-db']), 0)
        tables = inspect(db.engine).get_table_names()
        self.assertIn('po_headers', tables)
        self.assertIn('po_tasks', tables)

    @patch('po_lifecycle.main.init_application')
    def test_otd_command(self, init_application):
        session = make_session()
        add_order(session, 'PO-1')
        session.commit()

        with patch('po_lifecycle.main.session_scope', scope_for(session)):
            self.assertEqual(main(['otd', '--vendor', 'acme']), 0)
        init_application.assert_called_once_with(None)

    @patch('po_lifecycle.main.init_application')
    @patch('po_lifecycle.main.run_post_import_job')
    def test_match_reports_failure(self, run_job, init_application):
        run_job.return_value = {'processes': {}, 'success': False}
        self.assertEqual(main(['match', 'PO-1', 'PO-2']), 1)
        self.assertEqual(run_job.call_args[0][0], ['PO-1', 'PO-2'])

    @patch('po_lifecycle.main.init_application')
    @patch('po_lifecycle.main.TaskService.regenerate_tasks')
    def test_lifecycle_errors_exit_nonzero(self, regenerate, init_application):
        regenerate.side_effect = NotFoundError('PO PO-9 not found')
        with patch('po_lifecycle.main.session_scope', scope_for(make_session())):
            self.assertEqual(main(['regenerate-tasks', 'PO-9']), 1)


if __name__ == '__main__':
    pytest.main([__file__])
