# po_lifecycle/batch/import_job.py
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from po_lifecycle.db import session_scope
from po_lifecycle.exceptions import BatchProcessError
from po_lifecycle.models import POLineItem, PurchaseOrder
from po_lifecycle.policy import EnginePolicy
from po_lifecycle.services.projection_service import ProjectionService
from po_lifecycle.services.task_service import TaskService
from po_lifecycle.logging_setup import logger as log_manager, get_logger, log_exception
from po_lifecycle.utils.math_utils import chunked

logger = get_logger('import_job')

def load_imported_orders(session: Session, po_numbers: Sequence[str], chunk_size: int = 500) -> List[Dict]:
    """Build projection-matching records for imported POs.

    One record per line item carrying a SKU; a PO without SKU lines yields a
    single header-level record.

    Args:
        session: Database session
        po_numbers: Imported PO numbers
        chunk_size: Size of IN-list chunks

    Returns:
        List of order records
    """
    records = []
    for chunk in chunked(list(po_numbers), chunk_size):
        orders = session.query(PurchaseOrder).filter(PurchaseOrder.po_number.in_(chunk)).all()
        lines = session.query(POLineItem).filter(POLineItem.po_number.in_(chunk)).all()

        lines_by_po = {}
        for line in lines:
            if line.sku:
                lines_by_po.setdefault(line.po_number, []).append(line)

        for order in orders:
            base = {
                'po_number': order.po_number,
                'vendor': order.vendor,
                'po_date': order.po_date,
                'original_ship_date': order.original_ship_date,
                'program_description': order.program_description,
            }
            order_lines = lines_by_po.get(order.po_number)
            if not order_lines:
                records.append(dict(
                    base, sku=None, order_quantity=order.total_quantity, total_value=order.total_value
                ))
                continue
            for line in order_lines:
                records.append(dict(
                    base, sku=line.sku, order_quantity=line.order_quantity, total_value=line.line_total
                ))

    return records

def match_projections(po_numbers: Sequence[str], policy: EnginePolicy, scope=session_scope) -> Dict:
    """Match unmatched projections against the imported POs."""
    logger.info(f"Matching projections against {len(po_numbers)} imported POs")

    with scope() as session:
        orders = load_imported_orders(session, po_numbers, policy.chunk_size)
        results = ProjectionService(session, policy).match_projections_to_orders(orders)

    return results

def regenerate_tasks(po_numbers: Sequence[str], policy: EnginePolicy, today: Optional[date] = None,
                     scope=session_scope) -> Dict:
    """Regenerate tasks for the imported POs."""
    logger.info(f"Regenerating tasks for {len(po_numbers)} imported POs")

    with scope() as session:
        results = TaskService(session, policy).regenerate_tasks(po_numbers, today=today)

    return results

def run_post_import_job(
    po_numbers: Sequence[str],
    policy: Optional[EnginePolicy] = None,
    today: Optional[date] = None,
    scope=session_scope
) -> Dict:
    """Run projection matching and task regeneration after an order import.

    Each step commits per record, so a failure part way leaves earlier
    updates in place and the job can simply be run again. With
    policy.stop_on_error set, matching errors stop the job before tasks
    are regenerated.

    Args:
        po_numbers: PO numbers that were just imported
        policy: Engine policy (defaults to the configured one)
        today: Reference date for task rules
        scope: Session scope context manager

    Returns:
        Dictionary with job results
    """
    policy = policy or EnginePolicy.from_config()
    po_numbers = list(dict.fromkeys(po_numbers))
    log_info = log_manager.batch_start_log('post_import', {'po_count': len(po_numbers)})

    results = {
        'start_time': log_info['start_time'],
        'end_time': None,
        'processes': {},
        'success': False
    }

    try:
        logger.info("# Step 1: Match projections")
        matching = match_projections(po_numbers, policy, scope)
        results['processes']['match_projections'] = matching
        if policy.stop_on_error and matching['errors']:
            raise BatchProcessError(
                f"Projection matching reported {len(matching['errors'])} errors",
                details={'step': 'match_projections'}
            )

        logger.info("# Step 2: Regenerate tasks")
        results['processes']['regenerate_tasks'] = regenerate_tasks(po_numbers, policy, today, scope)

        results['success'] = True

    except Exception as e:
        log_exception('import_job', e, "Error during post-import job")
        results['error'] = str(e)

    results['end_time'] = datetime.now()
    summary = {
        name: {k: v for k, v in process.items() if k in ('matched', 'variances', 'skipped', 'total_generated', 'errors')}
        for name, process in results['processes'].items()
    }
    log_manager.batch_end_log(log_info, success=results['success'], result_info=summary)

    return results
