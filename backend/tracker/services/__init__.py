# Services package init
"""
Request Tracker: Services Layer
================================

Service Inventory:
    - EventBuffer: per-request accumulation of named events
    - Dispatcher: one delivery attempt per batch, outcome returned as a value
    - CollectorTransport (abstract): network interface to the collector
    - KeenTransport: Keen event-collection REST API over httpx
    - RequestEventBuilder: fluent construction of `request` event parameters

Nothing in this package imports the web framework.
"""
