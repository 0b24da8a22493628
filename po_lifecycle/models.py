# po_lifecycle/models.py
from sqlalchemy import (
    Column, Integer, BigInteger, String, Date, DateTime, Boolean, ForeignKey, Text, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from po_lifecycle.db import Base

class OrderStatus(str, enum.Enum):
    """Lifecycle status of a purchase order.

    Values:
        OPEN ('Open'): Order placed and in production
        SHIPPED ('Shipped'): Terminal, goods handed over
        CLOSED ('Closed'): Terminal, order administratively closed
        CANCELLED ('Cancelled'): Terminal, order withdrawn
    """
    OPEN = 'Open'
    SHIPPED = 'Shipped'
    CLOSED = 'Closed'
    CANCELLED = 'Cancelled'

    def __str__(self):
        """Return the string value of the enum."""
        return self.value

    @classmethod
    def terminal(cls):
        return (cls.SHIPPED.value, cls.CLOSED.value, cls.CANCELLED.value)

class ShipmentStatus(str, enum.Enum):
    """Externally maintained delivery verdict on a PO header."""
    ON_TIME = 'On-Time'
    LATE = 'Late'

class RevisedBy(str, enum.Enum):
    """Party responsible for a ship/cancel date revision."""
    VENDOR = 'VENDOR'
    CLIENT = 'CLIENT'
    FORWARDER = 'FORWARDER'

class MatchStatus(str, enum.Enum):
    UNMATCHED = 'unmatched'
    MATCHED = 'matched'
    EXPIRED = 'expired'

class OrderType(str, enum.Enum):
    """Projection order type.

    Values:
        REGULAR ('regular'): Matched by vendor, SKU and target month
        MTO ('mto'): Make-to-order, matched by vendor, collection and target month
    """
    REGULAR = 'regular'
    MTO = 'mto'

    @classmethod
    def from_string(cls, value: str) -> 'OrderType':
        """Create an OrderType from a string value.

        Raises:
            ValueError if the string value is not valid
        """
        try:
            return cls((value or '').strip().lower())
        except ValueError:
            raise ValueError(f"Invalid order type: {value}. Valid values are: regular, mto")

class TaskSource(str, enum.Enum):
    COMPLIANCE = 'compliance'
    INSPECTION = 'inspection'
    SHIPMENT = 'shipment'
    MANUAL = 'manual'
    TIMELINE = 'timeline'

class TaskPriority(str, enum.Enum):
    LOW = 'low'
    NORMAL = 'normal'
    HIGH = 'high'
    URGENT = 'urgent'


class Vendor(Base):
    __tablename__ = 'vendors'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, unique=True)
    merchandiser = Column(String(255))
    merchandising_manager = Column(String(255))
    country = Column(String(100))
    status = Column(String(50), default='Active')
    created_at = Column(DateTime, default=func.now())

    aliases = relationship("VendorAlias", back_populates="vendor", cascade="all, delete-orphan")
    purchase_orders = relationship("PurchaseOrder", back_populates="vendor_ref")

    def __repr__(self):
        return f"<Vendor(id={self.id}, name='{self.name}')>"


class VendorAlias(Base):
    """Alternate spelling of a vendor name seen on imported orders."""
    __tablename__ = 'vendor_capacity_aliases'

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False)
    alias = Column(String(255), nullable=False)

    vendor = relationship("Vendor", back_populates="aliases")


class PurchaseOrder(Base):
    """PO header.

    Money columns hold integer cents.
    """
    __tablename__ = 'po_headers'

    id = Column(Integer, primary_key=True)
    po_number = Column(String(50), nullable=False, unique=True)
    vendor = Column(String(255))
    vendor_id = Column(Integer, ForeignKey('vendors.id'))
    client = Column(String(255))
    client_division = Column(String(255))
    program_description = Column(Text)
    po_date = Column(Date)
    original_ship_date = Column(Date)
    original_cancel_date = Column(Date)
    revised_ship_date = Column(Date)
    revised_cancel_date = Column(Date)
    revised_by = Column(String(50))
    revised_reason = Column(String(255))
    total_quantity = Column(Integer, default=0)
    total_value = Column(BigInteger, default=0)
    shipped_value = Column(BigInteger, default=0)
    status = Column(String(50), default=OrderStatus.OPEN.value)
    shipment_status = Column(String(50))
    pts_number = Column(String(100))
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    vendor_ref = relationship("Vendor", back_populates="purchase_orders")
    line_items = relationship("POLineItem", back_populates="purchase_order")
    shipments = relationship("Shipment", back_populates="purchase_order")
    inspections = relationship("Inspection", back_populates="purchase_order")
    compliance_styles = relationship("ComplianceStyle", back_populates="purchase_order")
    milestones = relationship("POTimelineMilestone", back_populates="purchase_order")

    @property
    def effective_cancel_date(self):
        """Revised cancel date, defaulting to the original cancel date."""
        return self.revised_cancel_date or self.original_cancel_date

    @property
    def hand_over_date(self):
        """HOD: revised ship date, defaulting to the original ship date."""
        return self.revised_ship_date or self.original_ship_date

    def __repr__(self):
        return f"<PurchaseOrder(po_number='{self.po_number}', status='{self.status}')>"


class POLineItem(Base):
    __tablename__ = 'po_line_items'

    id = Column(Integer, primary_key=True)
    po_number = Column(String(50), ForeignKey('po_headers.po_number'), nullable=False)
    sku = Column(String(100))
    style = Column(String(100))
    description = Column(Text)
    order_quantity = Column(Integer, default=0)
    unit_price = Column(BigInteger, default=0)
    line_total = Column(BigInteger, default=0)

    purchase_order = relationship("PurchaseOrder", back_populates="line_items")

    __table_args__ = (
        Index('ix_po_line_items_sku', 'sku'),
    )


class Shipment(Base):
    __tablename__ = 'shipments'

    id = Column(Integer, primary_key=True)
    po_number = Column(String(50), ForeignKey('po_headers.po_number'), nullable=False)
    cargo_ready_date = Column(Date)
    delivery_to_consolidator = Column(Date)
    actual_sailing_date = Column(Date)
    shipped_value = Column(BigInteger, default=0)
    pts_number = Column(String(100))
    pts_status = Column(String(50))
    logistic_status = Column(String(50))
    hod_status = Column(String(50))
    late_reason_code = Column(String(100))

    purchase_order = relationship("PurchaseOrder", back_populates="shipments")

    __table_args__ = (
        Index('ix_shipments_po_number', 'po_number'),
    )


class Inspection(Base):
    __tablename__ = 'inspections'

    id = Column(Integer, primary_key=True)
    po_number = Column(String(50), ForeignKey('po_headers.po_number'), nullable=False)
    sku = Column(String(100))
    inspection_type = Column(String(100), nullable=False)
    inspection_date = Column(Date)
    result = Column(String(100))
    notes = Column(Text)

    purchase_order = relationship("PurchaseOrder", back_populates="inspections")

    __table_args__ = (
        Index('ix_inspections_po_number', 'po_number'),
    )


class QualityTest(Base):
    """SKU-scoped lab test or certificate."""
    __tablename__ = 'quality_tests'

    id = Column(Integer, primary_key=True)
    sku = Column(String(100), nullable=False)
    po_number = Column(String(50))
    test_type = Column(String(100))
    report_date = Column(Date)
    result = Column(String(100))
    expiry_date = Column(Date)

    __table_args__ = (
        Index('ix_quality_tests_sku', 'sku'),
    )


class ComplianceStyle(Base):
    __tablename__ = 'compliance_styles'

    id = Column(Integer, primary_key=True)
    po_number = Column(String(50), ForeignKey('po_headers.po_number'), nullable=False)
    style = Column(String(100))
    mandatory_status = Column(String(50))
    mandatory_expiry_date = Column(Date)
    performance_status = Column(String(50))
    performance_expiry_date = Column(Date)

    purchase_order = relationship("PurchaseOrder", back_populates="compliance_styles")


class POTimelineMilestone(Base):
    __tablename__ = 'po_timeline_milestones'

    id = Column(Integer, primary_key=True)
    po_number = Column(String(50), ForeignKey('po_headers.po_number'), nullable=False)
    milestone = Column(String(100), nullable=False)
    planned_date = Column(Date)
    revised_date = Column(Date)
    actual_date = Column(Date)
    sort_order = Column(Integer, default=0)

    purchase_order = relationship("PurchaseOrder", back_populates="milestones")

    @property
    def target_date(self):
        return self.revised_date or self.planned_date


class ActiveProjection(Base):
    """Forecast demand for a vendor in a target month.

    Regular projections are keyed by SKU, MTO projections by collection.
    Money columns hold integer cents.
    """
    __tablename__ = 'active_projections'

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False)
    vendor_code = Column(String(100))
    brand = Column(String(20))
    sku = Column(String(100))
    collection = Column(String(255))
    description = Column(Text)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    quantity = Column(Integer, default=0)
    projection_value = Column(BigInteger, default=0)
    order_type = Column(String(20), default=OrderType.REGULAR.value)
    match_status = Column(String(20), default=MatchStatus.UNMATCHED.value)
    matched_po_number = Column(String(50))
    matched_at = Column(DateTime)
    actual_quantity = Column(Integer)
    actual_value = Column(BigInteger)
    quantity_variance = Column(Integer)
    value_variance = Column(BigInteger)
    variance_pct = Column(Integer)
    comment = Column(Text)
    commented_at = Column(DateTime)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    vendor = relationship("Vendor")

    __table_args__ = (
        Index('ix_active_projections_lookup', 'vendor_id', 'year', 'month', 'match_status'),
    )

    def __repr__(self):
        key = self.collection if self.order_type == OrderType.MTO.value else self.sku
        return f"<ActiveProjection(id={self.id}, key='{key}', {self.year}-{self.month:02d}, status='{self.match_status}')>"


class POTask(Base):
    __tablename__ = 'po_tasks'

    id = Column(Integer, primary_key=True)
    po_number = Column(String(50), nullable=False)
    task_source = Column(String(20), nullable=False)
    task_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    due_date = Column(Date)
    priority = Column(String(20), default=TaskPriority.NORMAL.value)
    related_entity_type = Column(String(50))
    related_entity_id = Column(Integer)
    is_completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime)
    completed_by = Column(String(100))
    created_by = Column(String(100))
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('ix_po_tasks_po_number', 'po_number'),
    )

    @property
    def task_key(self):
        """Identity of the rule that produced the task."""
        return (self.task_source, self.task_type, self.related_entity_id)

    def __repr__(self):
        return f"<POTask(id={self.id}, po_number='{self.po_number}', type='{self.task_type}')>"
