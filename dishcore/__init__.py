"""
Recommendation and analytics core of the food-ordering backend.

Responsibilities:
- Track user preferences from item views and placed orders.
- Rebuild preference seeds, occasion tags and co-occurrence rankings offline.
- Serve personalized, occasion and combo recommendations.
- Compute windowed business statistics with previous-period comparison.
"""
