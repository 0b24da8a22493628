# po_lifecycle/services/vendor_service.py
from typing import Dict, Optional

from sqlalchemy.orm import Session

from po_lifecycle.models import Vendor, VendorAlias
from po_lifecycle.core.projection_matching import normalize_name

class VendorService:
    """Service resolving free-text vendor names to canonical vendors."""

    def __init__(self, session: Session):
        """Initialize the vendor service.

        Args:
            session: Database session
        """
        self.session = session

    def build_name_index(self) -> Dict[str, int]:
        """Map of lower-cased, trimmed vendor names and aliases to vendor IDs.

        Aliases are applied after canonical names, so an alias wins when both
        normalise to the same key.

        Returns:
            Dictionary of name -> vendor ID
        """
        index = {}
        for vendor_id, name in self.session.query(Vendor.id, Vendor.name).all():
            key = normalize_name(name)
            if key:
                index[key] = vendor_id

        for vendor_id, alias in self.session.query(VendorAlias.vendor_id, VendorAlias.alias).all():
            key = normalize_name(alias)
            if key:
                index[key] = vendor_id

        return index

    def resolve_vendor_id(self, name: Optional[str], index: Optional[Dict[str, int]] = None) -> Optional[int]:
        """Resolve a free-text vendor name, returning None when unknown."""
        index = index if index is not None else self.build_name_index()
        return index.get(normalize_name(name))
