# Routes package init
"""
Request Tracker: API Routes Package
====================================

Route Inventory:
    - health.py:  GET /health   (service and tracking status)
"""
