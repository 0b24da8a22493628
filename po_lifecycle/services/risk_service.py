# po_lifecycle/services/risk_service.py
from datetime import date
from typing import Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from po_lifecycle.core.exclusions import is_excluded
from po_lifecycle.core.risk import (
    RiskAssessment, STATUS_AT_RISK, STATUS_LATE, assess_order, is_unshipped, missing_inspections
)
from po_lifecycle.exceptions import NotFoundError, ValidationError
from po_lifecycle.models import PurchaseOrder
from po_lifecycle.policy import EnginePolicy, DEFAULT_POLICY
from po_lifecycle.services.scope import (
    OrderFilters, earliest_deliveries, inspections_by_po, pos_with_passing_qa, scoped_orders
)

logger = logging.getLogger(__name__)

class RiskService:
    """Service classifying purchase orders as late or at risk."""

    def __init__(self, session: Session, policy: Optional[EnginePolicy] = None):
        self.session = session
        self.policy = policy or DEFAULT_POLICY

    def classify_order(self, po_number: str, today: Optional[date] = None) -> RiskAssessment:
        """Classify a single PO.

        Args:
            po_number: PO number
            today: Reference date (defaults to today)

        Returns:
            RiskAssessment

        Raises:
            NotFoundError: If the PO does not exist
            ValidationError: If the PO is excluded from risk calculations
        """
        today = today or date.today()
        order = self.session.query(PurchaseOrder).filter(PurchaseOrder.po_number == po_number).first()
        if not order:
            raise NotFoundError(f"PO {po_number} not found")

        if is_excluded(order.po_number, order.total_value, order.program_description, self.policy):
            raise ValidationError(
                f"PO {po_number} is excluded from risk calculations",
                details={'po_number': po_number}
            )

        chunk = self.policy.chunk_size
        has_delivery = po_number in earliest_deliveries(self.session, [po_number], chunk)
        inspections = inspections_by_po(self.session, [po_number], chunk).get(po_number, [])
        has_passing_qa = po_number in pos_with_passing_qa(self.session, [po_number], chunk)

        return assess_order(order, inspections, has_passing_qa, has_delivery, today, self.policy)

    def assess_orders(
        self,
        filters: Optional[OrderFilters] = None,
        today: Optional[date] = None
    ) -> List[RiskAssessment]:
        """Assess every open, in-scope PO.

        Related rows are loaded in chunks, so this runs a bounded number of
        queries regardless of the number of orders.
        """
        today = today or date.today()
        orders = scoped_orders(self.session, filters, self.policy).all()
        if not orders:
            return []

        po_numbers = [o.po_number for o in orders]
        chunk = self.policy.chunk_size
        delivered = earliest_deliveries(self.session, po_numbers, chunk)
        open_orders = [o for o in orders if is_unshipped(o, o.po_number in delivered)]

        open_numbers = [o.po_number for o in open_orders]
        inspections = inspections_by_po(self.session, open_numbers, chunk)
        passing_qa = pos_with_passing_qa(self.session, open_numbers, chunk)

        assessments = []
        for order in open_orders:
            assessments.append(assess_order(
                order,
                inspections.get(order.po_number, []),
                order.po_number in passing_qa,
                False,
                today,
                self.policy,
            ))

        logger.debug(f"Assessed {len(assessments)} open orders out of {len(orders)} in scope")
        return assessments

    def get_late_and_at_risk_orders(
        self,
        filters: Optional[OrderFilters] = None,
        today: Optional[date] = None
    ) -> List[Dict]:
        """List late and at-risk orders, late first and most days late first.

        Returns:
            List of assessment dictionaries
        """
        flagged = [
            a for a in self.assess_orders(filters, today)
            if a.status in (STATUS_LATE, STATUS_AT_RISK)
        ]
        flagged.sort(key=lambda a: (
            0 if a.is_late else 1,
            -(a.days_late or 0),
            a.days_until_hod if a.days_until_hod is not None else float('inf'),
            a.po_number,
        ))
        return [a.to_dict() for a in flagged]

    def vendor_late_and_at_risk_counts(
        self,
        filters: Optional[OrderFilters] = None,
        limit: int = 8,
        today: Optional[date] = None
    ) -> List[Dict]:
        """Late and at-risk counts per vendor, highest combined count first."""
        vendors = {}
        for assessment in self.assess_orders(filters, today):
            if assessment.status not in (STATUS_LATE, STATUS_AT_RISK):
                continue
            vendor_name = (assessment.vendor or 'Unknown').strip()
            counts = vendors.setdefault(vendor_name, {'vendor': vendor_name, 'late_count': 0, 'at_risk_count': 0})
            if assessment.is_late:
                counts['late_count'] += 1
            else:
                counts['at_risk_count'] += 1

        ranked = sorted(
            vendors.values(),
            key=lambda c: (-(c['late_count'] + c['at_risk_count']), -c['late_count'], c['vendor'])
        )
        return ranked[:limit] if limit else ranked

    def missing_inspections(
        self,
        filters: Optional[OrderFilters] = None,
        today: Optional[date] = None
    ) -> List[Dict]:
        """Open orders inside an inspection window without the inspection booked.

        Returns:
            List of dicts with po_number, vendor, hand_over_date,
            days_until_hod and missing inspection types
        """
        today = today or date.today()
        orders = scoped_orders(self.session, filters, self.policy).all()
        chunk = self.policy.chunk_size
        delivered = earliest_deliveries(self.session, [o.po_number for o in orders], chunk)
        open_orders = [o for o in orders if is_unshipped(o, o.po_number in delivered)]
        inspections = inspections_by_po(self.session, [o.po_number for o in open_orders], chunk)

        results = []
        for order in open_orders:
            missing = missing_inspections(order, inspections.get(order.po_number, []), today, self.policy)
            if not missing:
                continue
            results.append({
                'po_number': order.po_number,
                'vendor': order.vendor,
                'hand_over_date': order.hand_over_date,
                'days_until_hod': (order.hand_over_date - today).days,
                'missing': missing,
            })

        results.sort(key=lambda r: (r['days_until_hod'], r['po_number']))
        return results
