"""
Request Tracker: Health Response Schema
"""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """
    What:  Health check response for monitoring and load balancer probes.
    Who:   Returned by GET /health.

    `tracking` is informational: a disabled tracker is a valid deployment,
    so it never makes the service unhealthy.
    """
    status: str = Field(description="Overall service status")
    version: str = Field(description="Application version")
    tracking: str = Field(description="Event delivery: enabled or disabled")
    pending_deliveries: int = Field(description="Background deliveries still in flight")
    uptime_seconds: float = Field(description="Seconds since service started")
