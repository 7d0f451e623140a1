"""
Standard type definitions for database models.

Provides consistent types for monetary fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for stablecoin amounts
# Precision: 36 digits total, 6 after decimal point (token precision)
# Amounts with more fractional digits are rejected before they get here
MoneyType = DECIMAL(36, 6)
