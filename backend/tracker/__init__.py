"""
Request Tracker: Application Package
=====================================

What:  Per-request analytics events, buffered in memory and delivered to a
       Keen-style event collector after each response has been sent.

Architecture:

    ┌─────────────────────────────────────┐
    │     Middleware (request tracking)   │  ← builds `request` events
    ├─────────────────────────────────────┤
    │   EventBuffer (one per request)     │  ← in-memory, never I/O
    ├─────────────────────────────────────┤
    │   Dispatcher (one per process)      │  ← one attempt, never raises
    ├─────────────────────────────────────┤
    │   CollectorTransport (httpx)        │  ← HTTP to the collector
    └─────────────────────────────────────┘

The buffer and the dispatcher form the delivery pipeline and have no
dependency on the web framework; the middleware is one producer of events.
"""

__version__ = "1.0.0"
