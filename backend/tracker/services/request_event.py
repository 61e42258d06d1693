"""
Request Tracker: Request Event Builder
=======================================

What:  Fluent builder for the parameters of one `request` event.
How:   Plain data accumulation; build() returns a fresh dict that can be
       passed straight to EventBuffer.add_event().
Who:   Used by RequestTrackingMiddleware.build_request_event(). Subclasses
       of the middleware use it to add their own fields.

Enrichment addons are not computed here. They are directives that ask the
collector to derive extra properties server-side, and travel in the event
under the reserved `keen.addons` key:

    {
        "ip": "203.0.113.7",
        "keen": {"addons": [
            {"name": "keen:ip_to_geo", "output": "ip_to_geo", "input": {"ip": "ip"}}
        ]}
    }
"""

import copy
from typing import Any, Dict, Mapping


# ── Addon Directives ──────────────────────────────────────────────────────
IP_TO_GEO_ADDON = {
    "name": "keen:ip_to_geo",
    "output": "ip_to_geo",
    "input": {"ip": "ip"},
}

UA_PARSER_ADDON = {
    "name": "keen:ua_parser",
    "output": "ua_parser",
    "input": {"ua_string": "user_agent"},
}

REFERRER_PARSER_ADDON = {
    "name": "keen:referrer_parser",
    "output": "referrer_parser",
    "input": {
        "page_url": "page_url",
        "referrer_url": "referrer_url",
    },
}


class RequestEventBuilder:
    """Accumulates request event fields, query/route params and addons."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def add_data(self, key: str, value: Any) -> "RequestEventBuilder":
        self._data[key] = value
        return self

    def add_params(self, params: Mapping[str, Any]) -> "RequestEventBuilder":
        """Merge `params` into the event's `params` field. Later keys win."""
        if params:
            self._data.setdefault("params", {}).update(params)
        return self

    def enrich(self, addon: Mapping[str, Any]) -> "RequestEventBuilder":
        """Append a collector-side enrichment directive."""
        keen = self._data.setdefault("keen", {})
        keen.setdefault("addons", []).append(copy.deepcopy(dict(addon)))
        return self

    def build(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)
