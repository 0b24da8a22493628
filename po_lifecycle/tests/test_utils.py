"""
Tests for the date and math helpers.
"""
import unittest
from datetime import date, datetime

import pytest

from po_lifecycle.utils.date_utils import comparison_years, to_date, month_name
from po_lifecycle.utils.math_utils import (
    chunked, round_half_up, safe_percentage, variance_percentage
)


class TestMathUtils(unittest.TestCase):
    def test_safe_percentage_zero_denominator(self):
        self.assertEqual(safe_percentage(5, 0), 0.0)
        self.assertEqual(safe_percentage(0, 0), 0.0)

    def test_safe_percentage_rounds_half_up(self):
        self.assertEqual(safe_percentage(1, 3), 33.3)
        self.assertEqual(safe_percentage(2, 3), 66.7)
        # 1/8 = 12.5%, 1/16 = 6.25% -> 6.3
        self.assertEqual(safe_percentage(1, 8), 12.5)
        self.assertEqual(safe_percentage(1, 16), 6.3)

    def test_round_half_up(self):
        self.assertEqual(round_half_up(2.45, 1), 2.5)
        self.assertEqual(round_half_up(2.25, 1), 2.3)
        self.assertEqual(round_half_up(-2.25, 1), -2.3)

    def test_variance_percentage(self):
        self.assertEqual(variance_percentage(120, 100), 20)
        self.assertEqual(variance_percentage(80, 100), -20)
        self.assertEqual(variance_percentage(50, 0), 0)
        # halves round towards positive infinity
        self.assertEqual(variance_percentage(9, 8), 13)
        self.assertEqual(variance_percentage(7, 8), -12)

    def test_chunked(self):
        self.assertEqual(list(chunked([1, 2, 3, 4, 5], 2)), [[1, 2], [3, 4], [5]])
        self.assertEqual(list(chunked([], 3)), [])


class TestDateUtils(unittest.TestCase):
    def test_to_date(self):
        self.assertEqual(to_date('2025-06-01'), date(2025, 6, 1))
        self.assertEqual(to_date(datetime(2025, 6, 1, 13, 30)), date(2025, 6, 1))
        self.assertIsNone(to_date(None))
        self.assertIsNone(to_date(''))

    def test_month_name(self):
        self.assertEqual(month_name(1), 'Jan')
        self.assertEqual(month_name(12), 'Dec')

    def test_default_years_are_previous_and_current(self):
        self.assertEqual(comparison_years(None, None, 2024, today=date(2025, 7, 15)), [2024, 2025])

    def test_default_years_respect_floor(self):
        self.assertEqual(comparison_years(None, None, 2024, today=date(2024, 3, 1)), [2024])

    def test_range_includes_preceding_year(self):
        years = comparison_years(date(2025, 1, 1), date(2025, 12, 31), 2024, today=date(2025, 7, 15))
        self.assertEqual(years, [2024, 2025])

    def test_range_never_goes_below_floor(self):
        years = comparison_years(date(2024, 3, 1), date(2025, 2, 1), 2024, today=date(2025, 7, 15))
        self.assertEqual(years, [2024, 2025])

    def test_empty_range_falls_back_to_current_year(self):
        years = comparison_years(date(2020, 1, 1), date(2021, 12, 31), 2024, today=date(2025, 7, 15))
        self.assertEqual(years, [2025])


if __name__ == '__main__':
    pytest.main([__file__])
