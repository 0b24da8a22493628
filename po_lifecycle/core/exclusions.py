# po_lifecycle/core/exclusions.py
from typing import Optional

from ..policy import EnginePolicy

BRAND_CB2 = 'CB2'
BRAND_CK = 'C&K'
BRAND_CB = 'CB'

def is_excluded(
    po_number: Optional[str],
    total_value: Optional[int],
    program_description: Optional[str],
    policy: EnginePolicy
) -> bool:
    """Check whether an order is left out of every OTD and risk calculation.

    Non-positive value, sample/swatch programs and franchise orders are excluded.

    Args:
        po_number: Order number
        total_value: Order value in cents
        program_description: Free-text program description
        policy: Engine policy holding the prefixes

    Returns:
        True if the order must be ignored
    """
    if not total_value or total_value <= 0:
        return True

    description = (program_description or '').upper()
    for prefix in policy.excluded_program_prefixes:
        if description.startswith(prefix.upper()):
            return True

    if policy.franchise_po_prefix and (po_number or '').startswith(policy.franchise_po_prefix):
        return True

    return False
