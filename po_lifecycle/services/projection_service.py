# po_lifecycle/services/projection_service.py
from datetime import date, datetime
from typing import Dict, List, Mapping, Optional, Sequence
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from po_lifecycle.core.projection_matching import (
    ProjectionIndex, apply_match, clear_match, days_until_due, extract_collection,
    is_significant_variance, mto_key, normalize_name, regular_key, target_date
)
from po_lifecycle.exceptions import NotFoundError, ProjectionError, ValidationError
from po_lifecycle.models import ActiveProjection, MatchStatus, OrderType, POLineItem, PurchaseOrder
from po_lifecycle.policy import EnginePolicy, DEFAULT_POLICY
from po_lifecycle.services.scope import ProjectionFilters
from po_lifecycle.services.vendor_service import VendorService
from po_lifecycle.utils.date_utils import to_date

logger = logging.getLogger(__name__)

def projection_to_dict(projection: ActiveProjection) -> Dict:
    return {
        'id': projection.id,
        'vendor_id': projection.vendor_id,
        'vendor_code': projection.vendor_code,
        'brand': projection.brand,
        'sku': projection.sku,
        'collection': projection.collection,
        'description': projection.description,
        'year': projection.year,
        'month': projection.month,
        'quantity': projection.quantity,
        'projection_value': projection.projection_value,
        'order_type': projection.order_type,
        'match_status': projection.match_status,
        'matched_po_number': projection.matched_po_number,
        'matched_at': projection.matched_at,
        'actual_quantity': projection.actual_quantity,
        'actual_value': projection.actual_value,
        'quantity_variance': projection.quantity_variance,
        'value_variance': projection.value_variance,
        'variance_pct': projection.variance_pct,
        'comment': projection.comment,
    }

class ProjectionService:
    """Service reconciling demand projections with imported orders."""

    def __init__(self, session: Session, policy: Optional[EnginePolicy] = None):
        """Initialize the projection service.

        Args:
            session: Database session
            policy: Engine policy (defaults to built-in thresholds)
        """
        self.session = session
        self.policy = policy or DEFAULT_POLICY
        self.vendor_service = VendorService(session)

    def get_projection(self, projection_id: int) -> ActiveProjection:
        """Get a projection by ID.

        Raises:
            NotFoundError: If the projection does not exist
        """
        projection = self.session.get(ActiveProjection, projection_id)
        if not projection:
            raise NotFoundError(f"Projection {projection_id} not found")
        return projection

    def _projection_query(self, filters: Optional[ProjectionFilters] = None):
        query = self.session.query(ActiveProjection)
        if filters:
            if filters.vendor_id:
                query = query.filter(ActiveProjection.vendor_id == filters.vendor_id)
            if filters.brand:
                query = query.filter(ActiveProjection.brand == filters.brand)
            if filters.year:
                query = query.filter(ActiveProjection.year == filters.year)
            if filters.month:
                query = query.filter(ActiveProjection.month == filters.month)
        return query

    def _commit(self, action: str):
        try:
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            raise ProjectionError(f"Failed to {action}: {str(e)}")

    def match_projections_to_orders(
        self,
        imported_orders: Sequence[Mapping],
        now: Optional[datetime] = None
    ) -> Dict:
        """Match unmatched projections against freshly imported orders.

        MTO matching by collection is tried first; an order that does not
        MTO-match falls through to SKU matching. Each match is committed on its
        own, so a failure only affects that projection.

        Args:
            imported_orders: Mappings with po_number, vendor, sku, order_quantity,
                             total_value, po_date, original_ship_date and
                             program_description
            now: Match timestamp (defaults to now)

        Returns:
            Dictionary with matched, variances, skipped and errors
        """
        results = {
            'matched': 0,
            'variances': 0,
            'skipped': 0,
            'matched_projection_ids': [],
            'errors': []
        }

        unmatched = (
            self.session.query(ActiveProjection)
            .filter(ActiveProjection.match_status == MatchStatus.UNMATCHED.value)
            .all()
        )
        if not unmatched:
            logger.info("No unmatched projections; nothing to match")
            return results

        index = ProjectionIndex(unmatched)
        vendor_index = self.vendor_service.build_name_index()
        now = now or datetime.now()

        for order in imported_orders:
            po_number = order.get('po_number')
            vendor_name = order.get('vendor')
            try:
                ship_date = to_date(order.get('original_ship_date'))
            except ValueError:
                logger.warning(
                    f"Skipping PO {po_number} for projection matching: "
                    f"unparseable ship date '{order.get('original_ship_date')}'"
                )
                results['skipped'] += 1
                continue

            if not vendor_name or not ship_date:
                results['skipped'] += 1
                continue

            vendor_id = vendor_index.get(normalize_name(vendor_name))
            if vendor_id is None:
                logger.info(f"Skipping PO {po_number} for projection matching: unknown vendor '{vendor_name}'")
                results['skipped'] += 1
                continue

            projection = None
            collection = extract_collection(order.get('program_description'), self.policy.known_mto_collections)
            if collection:
                projection = index.take_mto(mto_key(vendor_id, ship_date.year, ship_date.month, collection))

            if projection is None and order.get('sku'):
                projection = index.take_regular(
                    regular_key(vendor_id, ship_date.year, ship_date.month, order.get('sku'))
                )

            if projection is None:
                continue

            self._record_match(projection, order, now, results)

        logger.info(
            f"Projection matching: {results['matched']} matched, {results['variances']} significant variances, "
            f"{results['skipped']} skipped, {len(results['errors'])} errors"
        )
        return results

    def _record_match(self, projection: ActiveProjection, order: Mapping, now: datetime, results: Dict):
        po_number = order.get('po_number')
        try:
            variance = apply_match(
                projection, po_number, order.get('order_quantity'), order.get('total_value'), now
            )
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            message = f"Failed to match PO {po_number} to projection {projection.id}: {str(e)}"
            logger.error(message)
            results['errors'].append(message)
            return

        results['matched'] += 1
        results['matched_projection_ids'].append(projection.id)
        if is_significant_variance(variance['variance_pct'], self.policy.significant_variance_pct):
            results['variances'] += 1

    def _order_actuals(self, order: PurchaseOrder):
        quantity = order.total_quantity
        if not quantity:
            quantity = (
                self.session.query(func.coalesce(func.sum(POLineItem.order_quantity), 0))
                .filter(POLineItem.po_number == order.po_number)
                .scalar()
            )
        return quantity or 0, order.total_value or 0

    def manual_match_projection(
        self,
        projection_id: int,
        po_number: str,
        now: Optional[datetime] = None
    ) -> ActiveProjection:
        """Force-match a projection to a named PO.

        Calling it again with the same PO leaves the projection unchanged.

        Raises:
            NotFoundError: If the projection or the PO does not exist
        """
        projection = self.get_projection(projection_id)
        order = self.session.query(PurchaseOrder).filter(PurchaseOrder.po_number == po_number).first()
        if not order:
            raise NotFoundError(f"PO {po_number} not found")

        if (projection.match_status == MatchStatus.MATCHED.value
                and projection.matched_po_number == po_number):
            return projection

        actual_quantity, actual_value = self._order_actuals(order)
        apply_match(projection, po_number, actual_quantity, actual_value, now or datetime.now())
        self._commit(f"match projection {projection_id} to PO {po_number}")

        logger.info(f"Projection {projection_id} manually matched to PO {po_number}")
        return projection

    def unmatch_projection(self, projection_id: int) -> ActiveProjection:
        """Return a projection to the unmatched state and clear all match fields.

        Raises:
            NotFoundError: If the projection does not exist
        """
        projection = self.get_projection(projection_id)
        if projection.match_status == MatchStatus.UNMATCHED.value and projection.matched_po_number is None:
            return projection

        clear_match(projection)
        self._commit(f"unmatch projection {projection_id}")

        logger.info(f"Projection {projection_id} unmatched")
        return projection

    def mark_projection_expired(
        self,
        projection_id: int,
        reason: str,
        now: Optional[datetime] = None
    ) -> ActiveProjection:
        """Write off an unmatched projection with a comment.

        Raises:
            NotFoundError: If the projection does not exist
            ValidationError: If the projection is currently matched
        """
        projection = self.get_projection(projection_id)
        if projection.match_status == MatchStatus.MATCHED.value:
            raise ValidationError(
                f"Projection {projection_id} is matched to PO {projection.matched_po_number}; unmatch it first"
            )

        projection.match_status = MatchStatus.EXPIRED.value
        projection.comment = reason
        projection.commented_at = now or datetime.now()
        self._commit(f"expire projection {projection_id}")
        return projection

    def update_projection_order_type(self, projection_id: int, order_type: str) -> ActiveProjection:
        """Switch a projection between regular and MTO.

        Raises:
            NotFoundError: If the projection does not exist
            ValidationError: If the order type is unknown
        """
        try:
            new_type = OrderType.from_string(order_type)
        except ValueError as e:
            raise ValidationError(str(e))

        projection = self.get_projection(projection_id)
        projection.order_type = new_type.value
        self._commit(f"update order type of projection {projection_id}")
        return projection

    def get_overdue_projections(
        self,
        threshold_days: Optional[int] = None,
        filters: Optional[ProjectionFilters] = None,
        today: Optional[date] = None
    ) -> List[Dict]:
        """Unmatched regular projections due within the threshold.

        A projection is due on the first day of its target month and overdue
        once that date has passed.

        Args:
            threshold_days: Look-ahead in days (defaults to the policy value)
            filters: Optional projection filters
            today: Reference date (defaults to today)

        Returns:
            List of projection dicts with days_until_due and is_overdue,
            most urgent first
        """
        if threshold_days is None:
            threshold_days = self.policy.projection_threshold_days
        if threshold_days < 0:
            raise ValidationError(f"threshold_days must be non-negative, got {threshold_days}")
        today = today or date.today()

        projections = (
            self._projection_query(filters)
            .filter(ActiveProjection.match_status == MatchStatus.UNMATCHED.value)
            .all()
        )

        results = []
        for projection in projections:
            if projection.order_type == OrderType.MTO.value:
                continue
            days = days_until_due(projection, today)
            if days > threshold_days:
                continue
            record = projection_to_dict(projection)
            record['target_date'] = target_date(projection)
            record['days_until_due'] = days
            record['is_overdue'] = days < 0
            results.append(record)

        results.sort(key=lambda r: (r['days_until_due'], r['id']))
        return results

    def get_projections_with_variance(
        self,
        min_variance_pct: Optional[float] = None,
        filters: Optional[ProjectionFilters] = None
    ) -> List[Dict]:
        """Matched regular projections whose variance exceeds the threshold, largest first."""
        if min_variance_pct is None:
            min_variance_pct = self.policy.significant_variance_pct

        projections = (
            self._projection_query(filters)
            .filter(ActiveProjection.match_status == MatchStatus.MATCHED.value)
            .all()
        )
        results = [
            projection_to_dict(p) for p in projections
            if p.order_type != OrderType.MTO.value and is_significant_variance(p.variance_pct, min_variance_pct)
        ]
        results.sort(key=lambda r: (-abs(r['variance_pct']), r['id']))
        return results

    def get_mto_projections(
        self,
        filters: Optional[ProjectionFilters] = None,
        today: Optional[date] = None
    ) -> List[Dict]:
        """All MTO projections; unmatched ones carry days_until_due."""
        today = today or date.today()
        projections = (
            self._projection_query(filters)
            .filter(ActiveProjection.order_type == OrderType.MTO.value)
            .order_by(ActiveProjection.year, ActiveProjection.month, ActiveProjection.id)
            .all()
        )

        results = []
        for projection in projections:
            record = projection_to_dict(projection)
            if projection.match_status == MatchStatus.UNMATCHED.value:
                record['days_until_due'] = days_until_due(projection, today)
            else:
                record['days_until_due'] = None
            results.append(record)
        return results

    def get_validation_summary(
        self,
        filters: Optional[ProjectionFilters] = None,
        today: Optional[date] = None
    ) -> Dict:
        """Counts for the projection validation overview."""
        today = today or date.today()
        threshold = self.policy.projection_threshold_days
        projections = self._projection_query(filters).all()

        summary = {
            'total': len(projections),
            'unmatched': 0,
            'matched': 0,
            'removed': 0,
            'overdue': 0,
            'at_risk': 0,
            'with_variance': 0,
            'mto_total': 0,
            'mto_matched': 0,
            'mto_unmatched': 0,
        }

        for projection in projections:
            status = projection.match_status
            is_mto = projection.order_type == OrderType.MTO.value

            if status == MatchStatus.UNMATCHED.value:
                summary['unmatched'] += 1
            elif status == MatchStatus.MATCHED.value:
                summary['matched'] += 1
            elif status == MatchStatus.EXPIRED.value:
                summary['removed'] += 1

            if is_mto:
                summary['mto_total'] += 1
                if status == MatchStatus.MATCHED.value:
                    summary['mto_matched'] += 1
                elif status == MatchStatus.UNMATCHED.value:
                    summary['mto_unmatched'] += 1
                continue

            if status == MatchStatus.UNMATCHED.value:
                days = days_until_due(projection, today)
                if days < 0:
                    summary['overdue'] += 1
                elif days <= threshold:
                    summary['at_risk'] += 1
            elif (status == MatchStatus.MATCHED.value
                    and is_significant_variance(projection.variance_pct, self.policy.significant_variance_pct)):
                summary['with_variance'] += 1

        return summary
