"""
Command line interface for the order lifecycle engine.

Provides operator tools for OTD reporting, late/at-risk listings, projection
matching and task regeneration.
"""
import argparse
import json
import sys
from datetime import date

from tabulate import tabulate

from po_lifecycle.config import config
from po_lifecycle.db import db, session_scope
from po_lifecycle.exceptions import LifecycleError
from po_lifecycle.logging_setup import logger, get_logger
from po_lifecycle.policy import EnginePolicy
from po_lifecycle.services import (
    OrderFilters, ProjectionFilters, OTDService, RiskService, ProjectionService, TaskService
)
from po_lifecycle.core.otd import VARIANTS
from po_lifecycle.batch.import_job import run_post_import_job
from po_lifecycle.utils.date_utils import to_date

log = get_logger('cli')

def init_application(connection_string=None):
    """Initialize application components."""
    db.initialize(connection_string)
    logger.app_logger.info("Order lifecycle engine initialized")
    logger.app_logger.info(f"Using database engine: {config.get('DATABASE', 'engine')}")
    return True

def _filters(args) -> OrderFilters:
    return OrderFilters(
        merchandiser=args.merchandiser,
        merchandising_manager=args.manager,
        vendor=args.vendor,
        client=args.client,
        brand=args.brand,
        start_date=to_date(args.start_date),
        end_date=to_date(args.end_date),
    )

def _policy(args) -> EnginePolicy:
    return EnginePolicy.from_config(excused_reasons=tuple(getattr(args, 'excused_reason', None) or ()))

def show_otd(args):
    """Print aggregate True, Revised and Original OTD."""
    with session_scope() as session:
        result = OTDService(session, _policy(args)).calculate_otd(_filters(args))

    table = []
    for variant in VARIANTS:
        metrics = result[variant]
        table.append([
            variant,
            metrics['on_time_count'],
            metrics['shipped_count'],
            metrics['overdue_count'],
            metrics['otd_pct'],
            metrics['shipped_otd_pct'],
            metrics['value_otd_pct'],
        ])
    print(tabulate(table, headers=['Variant', 'On Time', 'Shipped', 'Overdue', 'OTD %', 'Shipped OTD %', 'Value OTD %']))

def show_monthly_otd(args):
    """Print year-over-year monthly OTD for one variant."""
    with session_scope() as session:
        rows = OTDService(session, _policy(args)).monthly_otd(args.variant, _filters(args))

    if args.json:
        print(json.dumps(rows, indent=2, default=str))
        return

    table = [
        [r['year'], r['month_name'], r['on_time_count'], r['shipped_count'], r['overdue_count'], r['otd_pct'], r['value_otd_pct']]
        for r in rows
    ]
    print(tabulate(table, headers=['Year', 'Month', 'On Time', 'Shipped', 'Overdue', 'OTD %', 'Value OTD %']))

def show_at_risk(args):
    """Print late and at-risk purchase orders."""
    with session_scope() as session:
        rows = RiskService(session, _policy(args)).get_late_and_at_risk_orders(_filters(args))

    if not rows:
        log.info("No late or at-risk orders found")
        return

    table = [
        [r['po_number'], r['vendor'], r['status'], r['hand_over_date'], r['cancel_date'], '; '.join(r['reasons'])]
        for r in rows
    ]
    print(tabulate(table, headers=['PO', 'Vendor', 'Status', 'HOD', 'Cancel', 'Reasons']))

def run_match(args):
    """Run the post-import job for the given PO numbers."""
    results = run_post_import_job(args.po_numbers, policy=_policy(args))
    matching = results['processes'].get('match_projections', {})
    tasks = results['processes'].get('regenerate_tasks', {})

    print(tabulate([
        ['Projections matched', matching.get('matched', 0)],
        ['Significant variances', matching.get('variances', 0)],
        ['Orders skipped', matching.get('skipped', 0)],
        ['Tasks generated', tasks.get('total_generated', 0)],
        ['Task errors', tasks.get('errors', 0)],
    ]))
    for error in matching.get('errors', []):
        log.error(error)

    if not results['success']:
        return 1
    return 0

def show_overdue_projections(args):
    """Print unmatched projections due within the threshold."""
    with session_scope() as session:
        rows = ProjectionService(session, _policy(args)).get_overdue_projections(
            threshold_days=args.threshold_days,
            filters=ProjectionFilters(vendor_id=args.vendor_id, brand=args.brand),
        )

    table = [
        [r['id'], r['vendor_id'], r['sku'], f"{r['year']}-{r['month']:02d}", r['quantity'], r['days_until_due'],
         'OVERDUE' if r['is_overdue'] else '']
        for r in rows
    ]
    print(tabulate(table, headers=['ID', 'Vendor', 'SKU', 'Target', 'Qty', 'Days', '']))

def run_regenerate_tasks(args):
    """Regenerate tasks for the given PO numbers."""
    with session_scope() as session:
        results = TaskService(session, _policy(args)).regenerate_tasks(args.po_numbers)

    table = [[r['po_number'], r['tasks_generated'], r['error'] or ''] for r in results['results']]
    print(tabulate(table, headers=['PO', 'Tasks', 'Error']))

def run_init_db(args):
    """Create (optionally drop first) the engine tables."""
    db.test_connection()
    if args.drop:
        log.warning("Dropping all tables")
        db.drop_all_tables()
    db.create_all_tables()
    log.info("Database tables created")

def _add_filter_arguments(parser):
    parser.add_argument('--merchandiser', help='Filter by merchandiser')
    parser.add_argument('--manager', help='Filter by merchandising manager')
    parser.add_argument('--vendor', help='Filter by vendor name (partial match)')
    parser.add_argument('--client', help='Filter by client (partial match)')
    parser.add_argument('--brand', choices=['CB', 'CB2', 'C&K'], help='Filter by brand')
    parser.add_argument('--start-date', help='Start date (YYYY-MM-DD)')
    parser.add_argument('--end-date', help='End date (YYYY-MM-DD)')

def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Order lifecycle analytics and rules engine')
    parser.add_argument('--database-url', help='SQLAlchemy URL (overrides settings.ini)')
    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    otd_parser = subparsers.add_parser('otd', help='Aggregate OTD for a scope')
    _add_filter_arguments(otd_parser)
    otd_parser.add_argument('--excused-reason', action='append', help='Revision reason excused by Original OTD')

    monthly_parser = subparsers.add_parser('monthly-otd', help='Year-over-year monthly OTD')
    monthly_parser.add_argument('variant', choices=list(VARIANTS), help='OTD variant')
    _add_filter_arguments(monthly_parser)
    monthly_parser.add_argument('--excused-reason', action='append', help='Revision reason excused by Original OTD')
    monthly_parser.add_argument('--json', action='store_true', help='Output in JSON format')

    risk_parser = subparsers.add_parser('at-risk', help='List late and at-risk orders')
    _add_filter_arguments(risk_parser)

    match_parser = subparsers.add_parser('match', help='Run projection matching and task regeneration for imported POs')
    match_parser.add_argument('po_numbers', nargs='+', help='Imported PO numbers')

    overdue_parser = subparsers.add_parser('overdue-projections', help='List unmatched projections coming due')
    overdue_parser.add_argument('--threshold-days', type=int, help='Look-ahead in days')
    overdue_parser.add_argument('--vendor-id', type=int, help='Filter by vendor ID')
    overdue_parser.add_argument('--brand', help='Filter by brand')

    tasks_parser = subparsers.add_parser('regenerate-tasks', help='Regenerate PO tasks')
    tasks_parser.add_argument('po_numbers', nargs='+', help='PO numbers')

    init_parser = subparsers.add_parser('init-db', help='Create the database tables')
    init_parser.add_argument('--drop', action='store_true', help='Drop existing tables first')

    args = parser.parse_args(argv)

    commands = {
        'otd': show_otd,
        'monthly-otd': show_monthly_otd,
        'at-risk': show_at_risk,
        'match': run_match,
        'overdue-projections': show_overdue_projections,
        'regenerate-tasks': run_regenerate_tasks,
        'init-db': run_init_db,
    }

    if args.command not in commands:
        parser.print_help()
        return 1

    init_application(args.database_url)
    log.info(f"Running command '{args.command}' on {date.today()}")

    try:
        status = commands[args.command](args)
    except LifecycleError as e:
        log.error(str(e))
        return 1

    return status or 0

if __name__ == '__main__':
    sys.exit(main())
