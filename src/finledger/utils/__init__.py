"""Utility functions for finledger."""

from finledger.utils.date_parser import parse_date, year_bounds
from finledger.utils.amount_parser import parse_amount, parse_decimal

__all__ = ["parse_date", "year_bounds", "parse_amount", "parse_decimal"]
