# Middleware package init
"""
Request Tracker: Middleware Package
====================================

Middleware Chain (order matters):
    Request → [Request ID] → [Request Tracking] → [CORS] → Route Handler

    1. Request ID first: the tracking middleware records the correlation ID
       on the `request` event.
    2. Request Tracking: owns the per-request EventBuffer; delivery runs as a
       background task once the response body has gone out.
"""
