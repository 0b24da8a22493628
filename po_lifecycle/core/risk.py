# po_lifecycle/core/risk.py
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional

from ..policy import EnginePolicy
from .otd import SHIPPED_STATUSES, TRUE_OTD_TERMINAL

STATUS_LATE = 'late'
STATUS_AT_RISK = 'at_risk'
STATUS_ON_TRACK = 'on_track'
STATUS_SHIPPED = 'shipped'

INSPECTION_INITIAL = 'Initial'
INSPECTION_INLINE = 'Inline'
INSPECTION_FINAL = 'Final'

PASSING_RESULTS = ('PASS', 'PASSED')


@dataclass
class RiskAssessment:
    """Late / at-risk verdict for one purchase order."""
    po_number: str
    status: str
    vendor: Optional[str] = None
    reasons: List[str] = field(default_factory=list)
    hand_over_date: Optional[date] = None
    cancel_date: Optional[date] = None
    days_until_hod: Optional[int] = None
    days_late: Optional[int] = None

    @property
    def is_late(self) -> bool:
        return self.status == STATUS_LATE

    @property
    def is_at_risk(self) -> bool:
        return self.status == STATUS_AT_RISK

    def to_dict(self):
        return {
            'po_number': self.po_number,
            'vendor': self.vendor,
            'status': self.status,
            'is_late': self.is_late,
            'is_at_risk': self.is_at_risk,
            'reasons': list(self.reasons),
            'hand_over_date': self.hand_over_date,
            'cancel_date': self.cancel_date,
            'days_until_hod': self.days_until_hod,
            'days_late': self.days_late,
        }


def is_inspection_type(inspection, inspection_type: str) -> bool:
    """Case-insensitive substring match on the inspection type."""
    return inspection_type.lower() in (inspection.inspection_type or '').lower()

def is_failed_result(result: Optional[str]) -> bool:
    """'Failed' and 'Failed - Critical Failure' both count as failures."""
    return (result or '').strip().lower().startswith('failed')

def is_passing_result(result: Optional[str]) -> bool:
    return (result or '').strip().upper() in PASSING_RESULTS

def is_booked(inspections: Iterable, inspection_type: str) -> bool:
    return any(is_inspection_type(i, inspection_type) for i in inspections)

def has_failed_final(inspections: Iterable) -> bool:
    return any(
        is_inspection_type(i, INSPECTION_FINAL) and is_failed_result(i.result)
        for i in inspections
    )

def is_unshipped(order, has_delivery: bool) -> bool:
    """Open order with no shipment verdict and no delivered shipment row."""
    if (order.status or '').upper() in TRUE_OTD_TERMINAL:
        return False
    if (order.shipment_status or '') in SHIPPED_STATUSES:
        return False
    return not has_delivery


def assess_order(
    order,
    inspections: Iterable,
    has_passing_qa: bool,
    has_delivery: bool,
    today: date,
    policy: EnginePolicy
) -> RiskAssessment:
    """Classify an order as late, at risk, on track or shipped.

    Late and at-risk are exclusive: once the effective cancel date has passed
    the order is late and no risk criteria are evaluated.

    Args:
        order: PurchaseOrder (or any object with the same attributes)
        inspections: Inspection rows for the order
        has_passing_qa: Whether any SKU on the order has a passing quality test
        has_delivery: Whether any shipment row has a delivery-to-consolidator date
        today: Reference date
        policy: Engine policy with the inspection and QA windows

    Returns:
        RiskAssessment
    """
    inspections = list(inspections)
    hod = order.hand_over_date
    cancel_date = order.effective_cancel_date
    days_until_hod = (hod - today).days if hod else None

    assessment = RiskAssessment(
        po_number=order.po_number,
        vendor=order.vendor,
        status=STATUS_ON_TRACK,
        hand_over_date=hod,
        cancel_date=cancel_date,
        days_until_hod=days_until_hod,
    )

    if not is_unshipped(order, has_delivery):
        assessment.status = STATUS_SHIPPED
        return assessment

    if cancel_date is not None and cancel_date < today:
        assessment.status = STATUS_LATE
        assessment.days_late = (today - cancel_date).days
        assessment.reasons.append(f"Past cancel date by {assessment.days_late} days")
        return assessment

    reasons = assessment.reasons

    if has_failed_final(inspections):
        reasons.append('Final inspection failed')

    if days_until_hod is not None:
        if days_until_hod <= policy.inline_inspection_window_days and not is_booked(inspections, INSPECTION_INLINE):
            reasons.append(
                f"Inline inspection not booked (due {policy.inline_inspection_window_days} days before HOD)"
            )
        if days_until_hod <= policy.final_inspection_window_days and not is_booked(inspections, INSPECTION_FINAL):
            reasons.append(
                f"Final inspection not booked (due {policy.final_inspection_window_days} days before HOD)"
            )
        if days_until_hod <= policy.qa_test_window_days and not has_passing_qa:
            reasons.append(
                f"QA test report not available (due {policy.qa_test_window_days} days before HOD)"
            )

    if reasons:
        assessment.status = STATUS_AT_RISK

    return assessment


def missing_inspections(
    order,
    inspections: Iterable,
    today: date,
    policy: EnginePolicy
) -> List[str]:
    """Inspection types that should already be booked for an open order.

    Uses the same windows as assess_order. Late orders and orders without a
    hand-over date report nothing.
    """
    inspections = list(inspections)
    hod = order.hand_over_date
    cancel_date = order.effective_cancel_date

    if hod is None or (cancel_date is not None and cancel_date < today):
        return []

    days_until_hod = (hod - today).days
    missing = []
    if days_until_hod <= policy.inline_inspection_window_days and not is_booked(inspections, INSPECTION_INLINE):
        missing.append(INSPECTION_INLINE)
    if days_until_hod <= policy.final_inspection_window_days and not is_booked(inspections, INSPECTION_FINAL):
        missing.append(INSPECTION_FINAL)
    return missing
