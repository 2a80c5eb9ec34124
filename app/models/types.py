"""
Standard type definitions for database models.

Provides consistent types for monetary, percentage and factor fields
across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for amounts, volumes, commissions
# Precision: 18 digits total, 8 after decimal point
# Range: up to 9,999,999,999.99999999
MoneyType = DECIMAL(18, 8)

# Percentage type for admin-configured rates and caps
# Precision: 10 digits total, 4 after decimal point
# Suitable for: 10.0000 (= 10%), 0.5000 (= 0.5%)
RatePercentType = DECIMAL(10, 4)

# Scale factor type for pool and global scaling
# Precision: 12 digits total, 10 after decimal point
# Range: 0.0000000000 to 99.9999999999
ScaleFactorType = DECIMAL(12, 10)

# Hashrate in TH/s
HashrateType = DECIMAL(18, 4)
