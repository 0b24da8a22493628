# po_lifecycle/services/otd_service.py
from datetime import date
from typing import Dict, List, Optional, Sequence
import logging

from sqlalchemy.orm import Session

from po_lifecycle.core import otd
from po_lifecycle.core.otd import ORIGINAL_OTD, REVISED_OTD, TRUE_OTD, VARIANTS
from po_lifecycle.exceptions import ValidationError
from po_lifecycle.policy import EnginePolicy, DEFAULT_POLICY
from po_lifecycle.services.scope import OrderFilters, earliest_deliveries, scoped_orders
from po_lifecycle.utils.date_utils import comparison_years

logger = logging.getLogger(__name__)

class OTDService:
    """Service computing on-time delivery metrics."""

    def __init__(self, session: Session, policy: Optional[EnginePolicy] = None):
        """Initialize the OTD service.

        Args:
            session: Database session
            policy: Engine policy (defaults to built-in thresholds)
        """
        self.session = session
        self.policy = policy or DEFAULT_POLICY

    def load_order_frame(self, filters: Optional[OrderFilters] = None):
        """Load in-scope orders as a per-order frame.

        Args:
            filters: Optional order filters

        Returns:
            DataFrame built by core.otd.build_order_frame
        """
        orders = scoped_orders(self.session, filters, self.policy).all()
        deliveries = earliest_deliveries(
            self.session, [o.po_number for o in orders], self.policy.chunk_size
        )

        records = [
            {
                'po_number': order.po_number,
                'vendor': order.vendor,
                'status': order.status,
                'shipment_status': order.shipment_status,
                'total_value': order.total_value,
                'shipped_value': order.shipped_value,
                'original_cancel_date': order.original_cancel_date,
                'effective_cancel_date': order.effective_cancel_date,
                'revised_by': order.revised_by,
                'revised_reason': order.revised_reason,
                'first_delivery_date': deliveries.get(order.po_number),
            }
            for order in orders
        ]
        logger.debug(f"Loaded {len(records)} orders for OTD calculation")
        return otd.build_order_frame(records)

    def _excused(self, excused_reasons: Optional[Sequence[str]]) -> Sequence[str]:
        if excused_reasons is None:
            return self.policy.excused_reasons
        return excused_reasons

    def calculate_otd(
        self,
        filters: Optional[OrderFilters] = None,
        excused_reasons: Optional[Sequence[str]] = None,
        today: Optional[date] = None
    ) -> Dict:
        """Aggregate True, Revised and Original OTD for a scope.

        Args:
            filters: Optional order filters; start/end dates bound each
                     variant's bucket date
            excused_reasons: Revision reasons treated as on time by Original OTD
            today: Reference date (defaults to today)

        Returns:
            Dictionary keyed by variant with count and value metrics
        """
        filters = filters or OrderFilters()
        today = today or date.today()
        frame = self.load_order_frame(filters)
        excused = self._excused(excused_reasons)

        result = {'as_of': today}
        for variant in VARIANTS:
            classified = otd.classify(variant, frame, today, excused)
            classified = otd.filter_bucket_range(classified, filters.start_date, filters.end_date)
            result[variant] = otd.summarize(classified)

        logger.info(
            f"OTD as of {today}: true={result[TRUE_OTD]['otd_pct']}% "
            f"revised={result[REVISED_OTD]['otd_pct']}% original={result[ORIGINAL_OTD]['otd_pct']}%"
        )
        return result

    def monthly_otd(
        self,
        variant: str,
        filters: Optional[OrderFilters] = None,
        excused_reasons: Optional[Sequence[str]] = None,
        today: Optional[date] = None
    ) -> List[Dict]:
        """Year-over-year monthly OTD of one variant.

        The year before the start year is included for comparison and no year
        below the policy's minimum year appears.

        Args:
            variant: 'true', 'revised' or 'original'
            filters: Optional order filters
            excused_reasons: Revision reasons treated as on time by Original OTD
            today: Reference date (defaults to today)

        Returns:
            List of per-month records ordered by year, then month
        """
        if variant not in VARIANTS:
            raise ValidationError(f"Unknown OTD variant: {variant}", details={'valid_variants': list(VARIANTS)})

        filters = filters or OrderFilters()
        today = today or date.today()
        years = comparison_years(filters.start_date, filters.end_date, self.policy.otd_min_year, today)

        frame = self.load_order_frame(filters)
        classified = otd.classify(variant, frame, today, self._excused(excused_reasons))
        return otd.monthly(classified, years)

    def otd_by_vendor(
        self,
        filters: Optional[OrderFilters] = None,
        today: Optional[date] = None
    ) -> List[Dict]:
        """Monthly Revised OTD per vendor.

        Returns:
            List of per-vendor, per-month records
        """
        filters = filters or OrderFilters()
        today = today or date.today()
        years = comparison_years(filters.start_date, filters.end_date, self.policy.otd_min_year, today)

        frame = self.load_order_frame(filters)
        classified = otd.classify_revised_otd(frame, today)
        return otd.by_vendor_monthly(classified, years)
