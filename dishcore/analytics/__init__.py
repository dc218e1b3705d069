"""
Windowed business analytics.

Responsibilities:
- Resolve named or explicit reporting windows and their previous period.
- Classify delivery states into canonical regions.
- Aggregate order, customer, dish, trend and regional statistics with
  zero-guarded period-over-period comparison.
"""
