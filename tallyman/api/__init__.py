"""
Tallyman REST API.

Provides DRF views for:
- Quote (tax split for one line)
- Availability (advisory, per product)
- Commitment (read-only)
"""
