# po_lifecycle/core/projection_matching.py
"""Matching rules between demand projections and imported orders.

Collection extraction for make-to-order programs is a two-stage lookup:

1. the first known collection name (in configured order) contained in the
   program description;
2. otherwise the words following the "mto" token and its separators, limited
   to letters, spaces and "/", cut at the first stop token (a month name or a
   four-digit year) with trailing punctuation trimmed.
"""
import re
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import MatchStatus, OrderType
from ..utils.date_utils import first_of_month
from ..utils.math_utils import variance_percentage

MTO_TOKEN = re.compile(r'(?<![a-z0-9])mto(?![a-z0-9])')
MTO_SEPARATORS = ' \t:_-'
COLLECTION_CHARS = re.compile(r'[a-z /]*')
TRAILING_PUNCTUATION = ' \t,;/-'

MONTH_STOP_TOKENS = frozenset([
    'jan', 'feb', 'mar', 'apr', 'may', 'jun', 'jul', 'aug', 'sep', 'sept', 'oct', 'nov', 'dec',
    'january', 'february', 'march', 'april', 'june', 'july', 'august', 'september',
    'october', 'november', 'december',
])
YEAR_STOP_TOKEN = re.compile(r'^(19|20)\d{2}$')

RegularKey = Tuple[int, int, int, str]
MtoKey = Tuple[int, int, int, str]


def normalize_name(value: Optional[str]) -> str:
    """Lower-case and trim a free-text name for dictionary lookups."""
    return (value or '').strip().lower()

def is_mto_description(description: Optional[str]) -> bool:
    """Whether a program description carries the standalone 'mto' token."""
    return bool(MTO_TOKEN.search((description or '').lower()))

def is_stop_token(token: str) -> bool:
    return token in MONTH_STOP_TOKENS or bool(YEAR_STOP_TOKEN.match(token))

def known_collection(description: str, known_collections: Sequence[str]) -> Optional[str]:
    """First known collection contained in the (lower-cased) description."""
    for collection in known_collections:
        if collection and collection in description:
            return collection
    return None

def fallback_collection(description: str) -> Optional[str]:
    """Collection name read from the words after the 'mto' token.

    Args:
        description: Lower-cased program description

    Returns:
        Extracted name or None
    """
    match = MTO_TOKEN.search(description)
    if not match:
        return None

    rest = description[match.end():]
    stripped = rest.lstrip(MTO_SEPARATORS)
    if not stripped or stripped == rest:
        return None

    words = []
    for token in COLLECTION_CHARS.match(stripped).group(0).split():
        if is_stop_token(token):
            break
        words.append(token)

    name = ' '.join(words).rstrip(TRAILING_PUNCTUATION).strip()
    return name or None

def extract_collection(
    description: Optional[str],
    known_collections: Sequence[str]
) -> Optional[str]:
    """Collection name of a make-to-order program description.

    Returns None when the description is not MTO or no name can be read.
    """
    lowered = (description or '').lower()
    if not MTO_TOKEN.search(lowered):
        return None

    return known_collection(lowered, known_collections) or fallback_collection(lowered)


def regular_key(vendor_id: int, year: int, month: int, sku: str) -> RegularKey:
    return (vendor_id, year, month, normalize_name(sku))

def mto_key(vendor_id: int, year: int, month: int, collection: str) -> MtoKey:
    return (vendor_id, year, month, normalize_name(collection))


class ProjectionIndex:
    """Lookup maps of unmatched projections.

    Several projections may share a key; they are handed out in id order and
    each one at most once.
    """

    def __init__(self, projections: Iterable = ()):
        self.regular: Dict[RegularKey, List] = {}
        self.mto: Dict[MtoKey, List] = {}
        for projection in sorted(projections, key=lambda p: p.id or 0):
            self.add(projection)

    def add(self, projection):
        if projection.order_type == OrderType.MTO.value and projection.collection:
            key = mto_key(projection.vendor_id, projection.year, projection.month, projection.collection)
            self.mto.setdefault(key, []).append(projection)
        elif projection.sku:
            key = regular_key(projection.vendor_id, projection.year, projection.month, projection.sku)
            self.regular.setdefault(key, []).append(projection)

    @staticmethod
    def _take(table: Dict, key):
        candidates = table.get(key)
        if not candidates:
            return None
        projection = candidates.pop(0)
        if not candidates:
            del table[key]
        return projection

    def take_mto(self, key: MtoKey):
        return self._take(self.mto, key)

    def take_regular(self, key: RegularKey):
        return self._take(self.regular, key)

    def __len__(self):
        return sum(len(v) for v in self.regular.values()) + sum(len(v) for v in self.mto.values())


def compute_variance(
    projected_quantity: Optional[int],
    projected_value: Optional[int],
    actual_quantity: Optional[int],
    actual_value: Optional[int]
) -> Dict[str, int]:
    """Quantity/value variance of an order against its projection."""
    projected_quantity = projected_quantity or 0
    projected_value = projected_value or 0
    actual_quantity = actual_quantity or 0
    actual_value = actual_value or 0

    return {
        'actual_quantity': actual_quantity,
        'actual_value': actual_value,
        'quantity_variance': actual_quantity - projected_quantity,
        'value_variance': actual_value - projected_value,
        'variance_pct': variance_percentage(actual_quantity, projected_quantity) if projected_quantity > 0 else 0,
    }

def is_significant_variance(variance_pct: Optional[float], threshold_pct: float) -> bool:
    return variance_pct is not None and abs(variance_pct) > threshold_pct

def apply_match(
    projection,
    po_number: str,
    actual_quantity: Optional[int],
    actual_value: Optional[int],
    matched_at: Optional[datetime] = None
) -> Dict[str, int]:
    """Mark a projection matched and store its variance fields."""
    variance = compute_variance(projection.quantity, projection.projection_value, actual_quantity, actual_value)

    projection.match_status = MatchStatus.MATCHED.value
    projection.matched_po_number = po_number
    projection.matched_at = matched_at or datetime.now()
    for name, value in variance.items():
        setattr(projection, name, value)

    return variance

def clear_match(projection):
    """Return a projection to the unmatched state with no match fields."""
    projection.match_status = MatchStatus.UNMATCHED.value
    projection.matched_po_number = None
    projection.matched_at = None
    projection.actual_quantity = None
    projection.actual_value = None
    projection.quantity_variance = None
    projection.value_variance = None
    projection.variance_pct = None

def target_date(projection) -> date:
    """First day of the projection's target month."""
    return first_of_month(projection.year, projection.month)

def days_until_due(projection, today: date) -> int:
    return (target_date(projection) - today).days
