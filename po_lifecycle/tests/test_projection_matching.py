"""
Tests for projection matching rules and the projection service.
"""
import unittest
from datetime import date, datetime
from types import SimpleNamespace

import pytest

from po_lifecycle.core.projection_matching import (
    ProjectionIndex, apply_match, clear_match, compute_variance, extract_collection,
    fallback_collection, is_mto_description, is_significant_variance, regular_key
)
from po_lifecycle.exceptions import NotFoundError, ValidationError
from po_lifecycle.models import MatchStatus
from po_lifecycle.policy import DEFAULT_KNOWN_COLLECTIONS, EnginePolicy
from po_lifecycle.services.projection_service import ProjectionService
from po_lifecycle.services.vendor_service import VendorService
from po_lifecycle.tests.helpers import TODAY, add_order, add_projection, add_vendor, make_session

MATCH_FIELDS = (
    'matched_po_number', 'matched_at', 'actual_quantity', 'actual_value',
    'quantity_variance', 'value_variance', 'variance_pct',
)


class TestCollectionExtraction(unittest.TestCase):
    def test_known_collection_takes_priority(self):
        self.assertEqual(extract_collection('MTO HOXTON FEB 2026', DEFAULT_KNOWN_COLLECTIONS), 'hoxton')

    def test_known_collection_list_order(self):
        self.assertEqual(
            extract_collection('MTO - LAURA/TIFF SEPT 2025', DEFAULT_KNOWN_COLLECTIONS), 'laura/tiff'
        )

    def test_fallback_stops_at_month(self):
        self.assertEqual(
            extract_collection('MTO: Marlow Sofa Jan 2026', DEFAULT_KNOWN_COLLECTIONS), 'marlow sofa'
        )

    def test_fallback_stops_at_punctuation(self):
        self.assertEqual(fallback_collection('mto_custom bench, march 2026'), 'custom bench')

    def test_fallback_requires_separator_and_name(self):
        self.assertIsNone(fallback_collection('mto'))
        self.assertIsNone(fallback_collection('mto 2026'))
        self.assertIsNone(fallback_collection('mto/bench'))
        self.assertIsNone(fallback_collection('mto feb 2026'))

    def test_requires_mto_token(self):
        self.assertIsNone(extract_collection('Regular replenishment', DEFAULT_KNOWN_COLLECTIONS))
        self.assertIsNone(extract_collection('SUMMTO VERA', DEFAULT_KNOWN_COLLECTIONS))
        self.assertIsNone(extract_collection(None, DEFAULT_KNOWN_COLLECTIONS))
        self.assertTrue(is_mto_description('Spring MTO:Vera'))
        self.assertFalse(is_mto_description('automotor'))

    def test_custom_known_collections(self):
        self.assertEqual(extract_collection('MTO Sable Feb 2026', ('sable',)), 'sable')


class TestVarianceAndIndex(unittest.TestCase):
    def test_compute_variance(self):
        variance = compute_variance(100, 10000, 120, 12500)
        self.assertEqual(variance['quantity_variance'], 20)
        self.assertEqual(variance['value_variance'], 2500)
        self.assertEqual(variance['variance_pct'], 20)

    def test_zero_projected_quantity(self):
        self.assertEqual(compute_variance(0, 0, 50, 500)['variance_pct'], 0)
        self.assertEqual(compute_variance(None, None, None, None)['quantity_variance'], 0)

    def test_significant_variance(self):
        self.assertTrue(is_significant_variance(11, 10))
        self.assertTrue(is_significant_variance(-11, 10))
        self.assertFalse(is_significant_variance(10, 10))
        self.assertFalse(is_significant_variance(None, 10))

    def test_index_hands_out_projections_in_id_order(self):
        second = SimpleNamespace(id=2, order_type='regular', sku='ABC', collection=None, vendor_id=1, year=2025, month=6)
        first = SimpleNamespace(id=1, order_type='regular', sku='abc', collection=None, vendor_id=1, year=2025, month=6)
        index = ProjectionIndex([second, first])

        key = regular_key(1, 2025, 6, ' ABC ')
        self.assertIs(index.take_regular(key), first)
        self.assertIs(index.take_regular(key), second)
        self.assertIsNone(index.take_regular(key))
        self.assertEqual(len(index), 0)

    def test_apply_and_clear_match(self):
        projection = SimpleNamespace(quantity=100, projection_value=1000, match_status='unmatched')
        apply_match(projection, 'PO-1', 90, 900, datetime(2025, 7, 1))
        self.assertEqual(projection.match_status, 'matched')
        self.assertEqual(projection.variance_pct, -10)

        clear_match(projection)
        self.assertEqual(projection.match_status, 'unmatched')
        for name in MATCH_FIELDS:
            self.assertIsNone(getattr(projection, name))


class TestProjectionService(unittest.TestCase):
    def setUp(self):
        self.session = make_session()
        self.vendor = add_vendor(self.session, 'Vendor V Ltd', aliases=['VV Ltd'])
        self.other = add_vendor(self.session, 'Other Mills')

        self.regular = add_projection(
            self.session, self.vendor.id, 2025, 6, sku='ABC123', quantity=100, projection_value=10000
        )
        self.mto = add_projection(
            self.session, self.vendor.id, 2026, 2, order_type='mto', collection='Hoxton',
            quantity=50, projection_value=50000
        )
        add_order(self.session, 'PO-900', vendor='Vendor V Ltd', total_quantity=95, total_value=9800)
        self.session.commit()

        self.service = ProjectionService(self.session, EnginePolicy())

    def tearDown(self):
        self.session.close()

    def test_vendor_index_includes_aliases(self):
        index = VendorService(self.session).build_name_index()
        self.assertEqual(index['vendor v ltd'], self.vendor.id)
        self.assertEqual(index['vv ltd'], self.vendor.id)
        self.assertEqual(VendorService(self.session).resolve_vendor_id('  VV LTD ', index), self.vendor.id)
        self.assertIsNone(VendorService(self.session).resolve_vendor_id('Nobody', index))

    def test_regular_match_with_variance(self):
        result = self.service.match_projections_to_orders([{
            'po_number': 'PO-1',
            'vendor': ' vv ltd ',
            'sku': 'abc123',
            'order_quantity': 120,
            'total_value': 12000,
            'original_ship_date': date(2025, 6, 15),
            'program_description': 'Core program',
        }])

        self.assertEqual(result['matched'], 1)
        self.assertEqual(result['variances'], 1)
        self.assertEqual(result['errors'], [])

        projection = self.service.get_projection(self.regular.id)
        self.assertEqual(projection.match_status, MatchStatus.MATCHED.value)
        self.assertEqual(projection.matched_po_number, 'PO-1')
        self.assertEqual(projection.quantity_variance, 20)
        self.assertEqual(projection.value_variance, 2000)
        self.assertEqual(projection.variance_pct, 20)

    def test_mto_match(self):
        result = self.service.match_projections_to_orders([{
            'po_number': 'PO-2',
            'vendor': 'Vendor V Ltd',
            'sku': None,
            'order_quantity': 50,
            'total_value': 50000,
            'original_ship_date': date(2026, 2, 10),
            'program_description': 'MTO HOXTON FEB 2026',
        }])
        self.assertEqual(result['matched'], 1)
        self.assertEqual(result['variances'], 0)
        self.assertEqual(self.service.get_projection(self.mto.id).matched_po_number, 'PO-2')

    def test_mto_without_projection_falls_through_to_sku(self):
        result = self.service.match_projections_to_orders([{
            'po_number': 'PO-3',
            'vendor': 'Vendor V Ltd',
            'sku': 'ABC123',
            'order_quantity': 100,
            'total_value': 10000,
            'original_ship_date': date(2025, 6, 1),
            'program_description': 'MTO Forte Jun 2025',
        }])
        self.assertEqual(result['matched'], 1)
        self.assertEqual(self.service.get_projection(self.regular.id).matched_po_number, 'PO-3')

    def test_unresolvable_or_undated_orders_are_skipped(self):
        result = self.service.match_projections_to_orders([
            {'po_number': 'PO-4', 'vendor': 'Unknown Co', 'sku': 'ABC123',
             'original_ship_date': date(2025, 6, 1)},
            {'po_number': 'PO-5', 'vendor': 'Vendor V Ltd', 'sku': 'ABC123',
             'original_ship_date': None},
        ])
        self.assertEqual(result['matched'], 0)
        self.assertEqual(result['skipped'], 2)
        self.assertEqual(self.service.get_projection(self.regular.id).match_status, 'unmatched')

    def test_bad_ship_date_skips_only_that_order(self):
        result = self.service.match_projections_to_orders([
            {'po_number': 'PO-8', 'vendor': 'Vendor V Ltd', 'sku': 'ABC123',
             'original_ship_date': '15/06/2025', 'order_quantity': 100},
            {'po_number': 'PO-9', 'vendor': 'vendor v ltd ', 'sku': 'abc123',
             'original_ship_date': date(2025, 6, 10), 'order_quantity': 120, 'total_value': 12000},
        ])
        self.assertEqual(result['skipped'], 1)
        self.assertEqual(result['matched'], 1)
        self.assertEqual(result['errors'], [])

        projection = self.service.get_projection(self.regular.id)
        self.assertEqual(projection.matched_po_number, 'PO-9')
        self.assertEqual(projection.variance_pct, 20)

    def test_projection_matched_at_most_once_per_run(self):
        order = {
            'vendor': 'Vendor V Ltd', 'sku': 'ABC123', 'order_quantity': 100, 'total_value': 10000,
            'original_ship_date': date(2025, 6, 1),
        }
        result = self.service.match_projections_to_orders([
            dict(order, po_number='PO-6'), dict(order, po_number='PO-7'),
        ])
        self.assertEqual(result['matched'], 1)
        self.assertEqual(self.service.get_projection(self.regular.id).matched_po_number, 'PO-6')

    def test_manual_match_is_idempotent(self):
        first = self.service.manual_match_projection(self.regular.id, 'PO-900', now=datetime(2025, 7, 1))
        state = {name: getattr(first, name) for name in MATCH_FIELDS}
        self.assertEqual(state['quantity_variance'], -5)
        self.assertEqual(state['variance_pct'], -5)

        second = self.service.manual_match_projection(self.regular.id, 'PO-900', now=datetime(2025, 7, 2))
        self.assertEqual({name: getattr(second, name) for name in MATCH_FIELDS}, state)

    def test_unmatch_restores_unmatched_state(self):
        self.service.manual_match_projection(self.regular.id, 'PO-900')
        projection = self.service.unmatch_projection(self.regular.id)

        self.assertEqual(projection.match_status, MatchStatus.UNMATCHED.value)
        for name in MATCH_FIELDS:
            self.assertIsNone(getattr(projection, name))

        # second unmatch is a no-op
        self.assertEqual(self.service.unmatch_projection(self.regular.id).match_status, 'unmatched')

    def test_manual_match_not_found(self):
        with self.assertRaises(NotFoundError):
            self.service.manual_match_projection(9999, 'PO-900')
        with self.assertRaises(NotFoundError):
            self.service.manual_match_projection(self.regular.id, 'NOPE')
        self.assertEqual(self.service.get_projection(self.regular.id).match_status, 'unmatched')
        with self.assertRaises(NotFoundError):
            self.service.unmatch_projection(9999)

    def test_expire_and_order_type(self):
        projection = self.service.mark_projection_expired(self.regular.id, 'Vendor dropped the style')
        self.assertEqual(projection.match_status, MatchStatus.EXPIRED.value)
        self.assertEqual(projection.comment, 'Vendor dropped the style')

        self.assertEqual(self.service.update_projection_order_type(self.regular.id, 'MTO').order_type, 'mto')
        with self.assertRaises(ValidationError):
            self.service.update_projection_order_type(self.regular.id, 'special')

    def test_expire_matched_projection_rejected(self):
        self.service.manual_match_projection(self.regular.id, 'PO-900')
        with self.assertRaises(ValidationError):
            self.service.mark_projection_expired(self.regular.id, 'late')

    def test_overdue_projections(self):
        overdue = add_projection(self.session, self.other.id, 2025, 5, sku='OLD-1')
        soon = add_projection(self.session, self.other.id, 2025, 9, sku='SOON-1')
        add_projection(self.session, self.other.id, 2026, 3, sku='FAR-1')
        add_projection(self.session, self.other.id, 2025, 5, order_type='mto', collection='vera')
        add_projection(self.session, self.other.id, 2025, 5, sku='DONE-1', match_status='matched')
        self.session.commit()

        rows = self.service.get_overdue_projections(today=TODAY)
        self.assertEqual([r['id'] for r in rows], [overdue.id, self.regular.id, soon.id])
        self.assertTrue(rows[0]['is_overdue'])
        self.assertEqual(rows[0]['days_until_due'], (date(2025, 5, 1) - TODAY).days)
        self.assertFalse(rows[2]['is_overdue'])

        with self.assertRaises(ValidationError):
            self.service.get_overdue_projections(threshold_days=-1, today=TODAY)

    def test_variance_listing_and_summary(self):
        big = add_projection(self.session, self.other.id, 2025, 5, sku='BIG', match_status='matched', variance_pct=-40)
        add_projection(self.session, self.other.id, 2025, 5, sku='SMALL', match_status='matched', variance_pct=5)
        mid = add_projection(self.session, self.other.id, 2025, 5, sku='MID', match_status='matched', variance_pct=25)
        self.session.commit()

        rows = self.service.get_projections_with_variance()
        self.assertEqual([r['id'] for r in rows], [big.id, mid.id])

        summary = self.service.get_validation_summary(today=TODAY)
        self.assertEqual(summary['total'], 5)
        self.assertEqual(summary['matched'], 3)
        self.assertEqual(summary['unmatched'], 2)
        self.assertEqual(summary['with_variance'], 2)
        self.assertEqual(summary['mto_total'], 1)
        self.assertEqual(summary['mto_unmatched'], 1)
        self.assertEqual(summary['overdue'], 1)

    def test_mto_listing(self):
        rows = self.service.get_mto_projections(today=TODAY)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['days_until_due'], (date(2026, 2, 1) - TODAY).days)


if __name__ == '__main__':
    pytest.main([__file__])
