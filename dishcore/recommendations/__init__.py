"""
Recommendation engine.

Responsibilities:
- Track user preferences online from views and placed orders.
- Rebuild preference seeds, occasion tags and co-occurrence rankings offline.
- Serve personalized, occasion-filtered and combo recommendations.
"""
