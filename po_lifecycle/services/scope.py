# po_lifecycle/services/scope.py
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Query, Session

from po_lifecycle.models import PurchaseOrder, QualityTest, POLineItem, Shipment, Inspection, Vendor
from po_lifecycle.policy import EnginePolicy
from po_lifecycle.core.exclusions import BRAND_CB, BRAND_CB2, BRAND_CK
from po_lifecycle.core.risk import is_passing_result
from po_lifecycle.utils.math_utils import chunked


@dataclass
class OrderFilters:
    """Scope of an OTD or risk query. Every field is optional."""
    merchandiser: Optional[str] = None
    merchandising_manager: Optional[str] = None
    vendor: Optional[str] = None
    client: Optional[str] = None
    brand: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass
class ProjectionFilters:
    vendor_id: Optional[int] = None
    brand: Optional[str] = None
    year: Optional[int] = None
    month: Optional[int] = None


def brand_expression():
    """SQL expression deriving the brand bucket of a PO header."""
    division = func.coalesce(PurchaseOrder.client_division, '')
    client = func.coalesce(PurchaseOrder.client, '')
    return case(
        (or_(division.ilike('%CB2%'), client.ilike('%CB2%')), BRAND_CB2),
        (or_(division.ilike('%Kids%'), client.ilike('%Kids%'), division.ilike('%C&K%')), BRAND_CK),
        else_=BRAND_CB,
    )


def apply_exclusions(query: Query, policy: EnginePolicy) -> Query:
    """Drop zero-value, sample/swatch and franchise orders."""
    query = query.filter(func.coalesce(PurchaseOrder.total_value, 0) > 0)
    description = func.coalesce(PurchaseOrder.program_description, '')
    for prefix in policy.excluded_program_prefixes:
        query = query.filter(~description.ilike(f"{prefix}%"))
    if policy.franchise_po_prefix:
        query = query.filter(~PurchaseOrder.po_number.like(f"{policy.franchise_po_prefix}%"))
    return query


def scoped_orders(session: Session, filters: Optional[OrderFilters], policy: EnginePolicy) -> Query:
    """Query of non-excluded PO headers matching the filter scope.

    start_date/end_date are not applied here; each calculation bounds its
    own bucket date.
    """
    filters = filters or OrderFilters()
    query = apply_exclusions(session.query(PurchaseOrder), policy)

    if filters.merchandiser or filters.merchandising_manager:
        query = query.outerjoin(
            Vendor,
            or_(
                PurchaseOrder.vendor_id == Vendor.id,
                and_(
                    PurchaseOrder.vendor_id.is_(None),
                    func.lower(Vendor.name) == func.lower(func.trim(PurchaseOrder.vendor))
                )
            )
        )
        if filters.merchandiser:
            query = query.filter(Vendor.merchandiser == filters.merchandiser)
        if filters.merchandising_manager:
            query = query.filter(Vendor.merchandising_manager == filters.merchandising_manager)

    if filters.vendor:
        query = query.filter(PurchaseOrder.vendor.ilike(f"%{filters.vendor}%"))
    if filters.client:
        query = query.filter(PurchaseOrder.client.ilike(f"%{filters.client}%"))
    if filters.brand:
        query = query.filter(brand_expression() == filters.brand)

    return query


def earliest_deliveries(session: Session, po_numbers: Iterable[str], chunk_size: int) -> Dict[str, date]:
    """Earliest delivery-to-consolidator date per PO, across all its shipments."""
    result = {}
    for chunk in chunked(list(po_numbers), chunk_size):
        rows = (
            session.query(Shipment.po_number, func.min(Shipment.delivery_to_consolidator))
            .filter(Shipment.po_number.in_(chunk))
            .filter(Shipment.delivery_to_consolidator.isnot(None))
            .group_by(Shipment.po_number)
            .all()
        )
        result.update({po_number: delivered for po_number, delivered in rows})
    return result


def inspections_by_po(session: Session, po_numbers: Iterable[str], chunk_size: int) -> Dict[str, List[Inspection]]:
    result = {}
    for chunk in chunked(list(po_numbers), chunk_size):
        for inspection in session.query(Inspection).filter(Inspection.po_number.in_(chunk)).all():
            result.setdefault(inspection.po_number, []).append(inspection)
    return result


def pos_with_passing_qa(session: Session, po_numbers: Iterable[str], chunk_size: int) -> Set[str]:
    """PO numbers with at least one SKU holding a passing quality test."""
    passing = set()
    for chunk in chunked(list(po_numbers), chunk_size):
        rows = (
            session.query(POLineItem.po_number, QualityTest.result)
            .join(QualityTest, QualityTest.sku == POLineItem.sku)
            .filter(POLineItem.po_number.in_(chunk))
            .all()
        )
        passing.update(po_number for po_number, result in rows if is_passing_result(result))
    return passing
