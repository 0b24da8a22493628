# po_lifecycle/core/otd.py
"""On-time delivery formulas.

Three independent definitions are kept side by side:

* True OTD     - on time per the externally maintained shipment_status,
                 overdue unshipped orders added to the denominator.
* Revised OTD  - earliest delivery to consolidator against the effective
                 (revised) cancel date, overdue backlog added to the denominator.
* Original OTD - same delivery date against the original cancel date, with
                 client/forwarder revisions and excused reasons counted as on time.

Every function here works on a pandas frame with one row per order, built by
build_order_frame(). Values are integer cents.
"""
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..exceptions import ValidationError
from ..models import OrderStatus, RevisedBy, ShipmentStatus
from ..utils.date_utils import month_name
from ..utils.math_utils import safe_percentage

TRUE_OTD = 'true'
REVISED_OTD = 'revised'
ORIGINAL_OTD = 'original'
VARIANTS = (TRUE_OTD, REVISED_OTD, ORIGINAL_OTD)

ON_TIME = ShipmentStatus.ON_TIME.value
SHIPPED_STATUSES = (ShipmentStatus.ON_TIME.value, ShipmentStatus.LATE.value)
# statuses are compared upper-cased
TRUE_OTD_TERMINAL = tuple(status.upper() for status in OrderStatus.terminal())
BACKLOG_TERMINAL = (OrderStatus.CLOSED.value.upper(), OrderStatus.CANCELLED.value.upper())
EXCUSED_PARTIES = (RevisedBy.CLIENT.value, RevisedBy.FORWARDER.value)

ORDER_COLUMNS = [
    'po_number', 'vendor', 'status', 'shipment_status', 'total_value', 'shipped_value',
    'original_cancel_date', 'effective_cancel_date', 'revised_by', 'revised_reason',
    'first_delivery_date',
]
DATE_COLUMNS = ['original_cancel_date', 'effective_cancel_date', 'first_delivery_date']

CLASSIFIED_COLUMNS = [
    'po_number', 'vendor', 'bucket_date', 'shipped', 'on_time', 'overdue',
    'shipped_value', 'on_time_value', 'overdue_value',
]


def build_order_frame(records: Iterable[Dict]) -> pd.DataFrame:
    """Build the per-order frame used by every OTD formula.

    Args:
        records: Dicts carrying ORDER_COLUMNS; first_delivery_date is the
                 earliest delivery-to-consolidator date across the order's shipments

    Returns:
        DataFrame with normalised dtypes
    """
    df = pd.DataFrame.from_records(list(records), columns=ORDER_COLUMNS)

    for column in DATE_COLUMNS:
        df[column] = pd.to_datetime(df[column])
    for column in ('total_value', 'shipped_value'):
        df[column] = pd.to_numeric(df[column]).fillna(0).astype('int64')
    for column in ('status', 'shipment_status', 'revised_by', 'revised_reason', 'vendor'):
        df[column] = df[column].fillna('').astype(str)

    return df


def _empty_classified() -> pd.DataFrame:
    return pd.DataFrame(columns=CLASSIFIED_COLUMNS)


def _classified(df, bucket, shipped, on_time, overdue) -> pd.DataFrame:
    shipped = shipped.to_numpy(dtype=bool)
    on_time = on_time.to_numpy(dtype=bool) & shipped
    overdue = overdue.to_numpy(dtype=bool) & ~shipped

    out = pd.DataFrame({
        'po_number': df['po_number'].to_numpy(),
        'vendor': df['vendor'].to_numpy(),
        'bucket_date': bucket.to_numpy(),
        'shipped': shipped,
        'on_time': on_time,
        'overdue': overdue,
        'shipped_value': np.where(shipped, df['shipped_value'].to_numpy(), 0),
        'on_time_value': np.where(on_time, df['shipped_value'].to_numpy(), 0),
        'overdue_value': np.where(overdue, df['total_value'].to_numpy(), 0),
    })
    keep = (out['shipped'] | out['overdue']) & out['bucket_date'].notna()
    return out[keep].reset_index(drop=True)


def classify_true_otd(df: pd.DataFrame, today: date) -> pd.DataFrame:
    """Classify orders under True OTD, bucketed by effective cancel date."""
    if df.empty:
        return _empty_classified()

    now = pd.Timestamp(today)
    shipped = df['shipment_status'].isin(SHIPPED_STATUSES)
    on_time = df['shipment_status'] == ON_TIME
    overdue = (
        (df['effective_cancel_date'] < now)
        & ~df['status'].str.upper().isin(TRUE_OTD_TERMINAL)
        & df['first_delivery_date'].isna()
    )
    return _classified(df, df['effective_cancel_date'], shipped, on_time, overdue)


def classify_revised_otd(df: pd.DataFrame, today: date) -> pd.DataFrame:
    """Classify orders under Revised OTD, bucketed by effective cancel date."""
    if df.empty:
        return _empty_classified()

    now = pd.Timestamp(today)
    shipped = df['first_delivery_date'].notna()
    on_time = df['first_delivery_date'] <= df['effective_cancel_date']
    overdue = (
        (df['effective_cancel_date'] < now)
        & ~df['status'].str.upper().isin(BACKLOG_TERMINAL)
    )
    return _classified(df, df['effective_cancel_date'], shipped, on_time, overdue)


def classify_original_otd(
    df: pd.DataFrame,
    excused_reasons: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """Classify orders under Original OTD, bucketed by delivery date.

    Only delivered orders with an original cancel date are counted.
    """
    if df.empty:
        return _empty_classified()

    excused = {reason.strip() for reason in (excused_reasons or []) if reason and reason.strip()}

    shipped = df['first_delivery_date'].notna() & df['original_cancel_date'].notna()
    on_time = (
        (df['first_delivery_date'] <= df['original_cancel_date'])
        | df['revised_by'].str.upper().isin(EXCUSED_PARTIES)
        | df['revised_reason'].str.strip().isin(excused)
    )
    overdue = pd.Series(False, index=df.index)
    return _classified(df, df['first_delivery_date'], shipped, on_time, overdue)


def classify(
    variant: str,
    df: pd.DataFrame,
    today: date,
    excused_reasons: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """Dispatch to the classifier of a named variant."""
    if variant == TRUE_OTD:
        return classify_true_otd(df, today)
    if variant == REVISED_OTD:
        return classify_revised_otd(df, today)
    if variant == ORIGINAL_OTD:
        return classify_original_otd(df, excused_reasons)
    raise ValidationError(
        f"Unknown OTD variant: {variant}",
        details={'valid_variants': list(VARIANTS)}
    )


def filter_bucket_range(
    classified: pd.DataFrame,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> pd.DataFrame:
    """Keep rows whose bucket date falls inside [start_date, end_date]."""
    mask = pd.Series(True, index=classified.index)
    if start_date is not None:
        mask &= classified['bucket_date'] >= pd.Timestamp(start_date)
    if end_date is not None:
        mask &= classified['bucket_date'] <= pd.Timestamp(end_date)
    return classified[mask]


def _metrics(shipped, on_time, overdue, shipped_value, on_time_value, overdue_value) -> Dict:
    shipped, on_time, overdue = int(shipped), int(on_time), int(overdue)
    shipped_value, on_time_value, overdue_value = int(shipped_value), int(on_time_value), int(overdue_value)

    return {
        'shipped_count': shipped,
        'on_time_count': on_time,
        'late_count': shipped - on_time,
        'overdue_count': overdue,
        'total_count': shipped + overdue,
        'otd_pct': safe_percentage(on_time, shipped + overdue),
        'shipped_otd_pct': safe_percentage(on_time, shipped),
        'shipped_value': shipped_value,
        'on_time_value': on_time_value,
        'late_value': shipped_value - on_time_value,
        'overdue_value': overdue_value,
        'total_value': shipped_value + overdue_value,
        'value_otd_pct': safe_percentage(on_time_value, shipped_value + overdue_value),
    }


def summarize(classified: pd.DataFrame) -> Dict:
    """Aggregate classified rows into count and value metrics.

    The denominator is shipped + overdue; a row is never both.
    """
    if classified.empty:
        return _metrics(0, 0, 0, 0, 0, 0)

    return _metrics(
        classified['shipped'].sum(),
        classified['on_time'].sum(),
        classified['overdue'].sum(),
        classified['shipped_value'].sum(),
        classified['on_time_value'].sum(),
        classified['overdue_value'].sum(),
    )


def monthly(classified: pd.DataFrame, years: Sequence[int]) -> List[Dict]:
    """Month-bucketed metrics for the given years.

    Returns:
        List of dicts ordered by year then month
    """
    if classified.empty:
        return []

    frame = classified.assign(
        year=classified['bucket_date'].dt.year,
        month=classified['bucket_date'].dt.month,
    )
    frame = frame[frame['year'].isin(list(years))]
    if frame.empty:
        return []

    grouped = (
        frame.groupby(['year', 'month'])
        .agg(
            shipped=('shipped', 'sum'),
            on_time=('on_time', 'sum'),
            overdue=('overdue', 'sum'),
            shipped_value=('shipped_value', 'sum'),
            on_time_value=('on_time_value', 'sum'),
            overdue_value=('overdue_value', 'sum'),
        )
        .reset_index()
        .sort_values(['year', 'month'])
    )

    results = []
    for row in grouped.itertuples(index=False):
        record = {
            'year': int(row.year),
            'month': int(row.month),
            'month_name': month_name(int(row.month)),
        }
        record.update(_metrics(
            row.shipped, row.on_time, row.overdue,
            row.shipped_value, row.on_time_value, row.overdue_value,
        ))
        results.append(record)

    return results


def by_vendor_monthly(classified: pd.DataFrame, years: Sequence[int]) -> List[Dict]:
    """Monthly metrics split per vendor, ordered by vendor, year and month."""
    if classified.empty:
        return []

    results = []
    for vendor_name, group in classified.groupby('vendor', sort=True):
        for record in monthly(group, years):
            record['vendor'] = vendor_name
            results.append(record)
    return results
