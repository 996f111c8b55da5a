"""
Utility functions for GoldLedger.

This package contains:
- datetime_utils: timezone-aware timestamps
- decimal_utils: gram / price precision handling matching the DB columns
"""
