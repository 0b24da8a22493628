"""
Shared fixtures for the engine tests: an in-memory SQLite session and small
factories for the fact tables.
"""
from contextlib import contextmanager
from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from po_lifecycle.db import Base
from po_lifecycle.models import (
    ActiveProjection, ComplianceStyle, Inspection, POLineItem, PurchaseOrder,
    QualityTest, Shipment, Vendor, VendorAlias
)

TODAY = date(2025, 7, 15)

def make_session():
    """Fresh in-memory database with every table created."""
    engine = create_engine('sqlite://')
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)()

def scope_for(session):
    """session_scope replacement bound to an existing test session."""
    @contextmanager
    def scope():
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
    return scope

def add_vendor(session, name, aliases=(), merchandiser=None, manager=None):
    vendor = Vendor(name=name, merchandiser=merchandiser, merchandising_manager=manager)
    session.add(vendor)
    session.flush()
    for alias in aliases:
        session.add(VendorAlias(vendor_id=vendor.id, alias=alias))
    session.flush()
    return vendor

def add_order(session, po_number, **kwargs):
    values = {
        'vendor': 'Acme Furniture',
        'client': 'Crate and Barrel',
        'status': 'Open',
        'total_value': 100000,
        'shipped_value': 0,
        'total_quantity': 100,
    }
    values.update(kwargs)
    order = PurchaseOrder(po_number=po_number, **values)
    session.add(order)
    session.flush()
    return order

def add_shipment(session, po_number, delivered=None, **kwargs):
    shipment = Shipment(po_number=po_number, delivery_to_consolidator=delivered, **kwargs)
    session.add(shipment)
    session.flush()
    return shipment

def add_inspection(session, po_number, inspection_type, result=None, inspection_date=None):
    inspection = Inspection(
        po_number=po_number, inspection_type=inspection_type, result=result, inspection_date=inspection_date
    )
    session.add(inspection)
    session.flush()
    return inspection

def add_line(session, po_number, sku, quantity=10, line_total=1000):
    line = POLineItem(po_number=po_number, sku=sku, order_quantity=quantity, line_total=line_total)
    session.add(line)
    session.flush()
    return line

def add_quality_test(session, sku, result='Pass'):
    test = QualityTest(sku=sku, result=result)
    session.add(test)
    session.flush()
    return test

def add_compliance(session, po_number, **kwargs):
    compliance = ComplianceStyle(po_number=po_number, **kwargs)
    session.add(compliance)
    session.flush()
    return compliance

def add_projection(session, vendor_id, year, month, **kwargs):
    values = {
        'order_type': 'regular',
        'match_status': 'unmatched',
        'quantity': 100,
        'projection_value': 10000,
    }
    values.update(kwargs)
    projection = ActiveProjection(vendor_id=vendor_id, year=year, month=month, **values)
    session.add(projection)
    session.flush()
    return projection
