"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address.

Usage in routes:
    from fastapi import Request
    from autonomy.core.rate_limit import limiter

    @router.post("/symptoms/report")
    @limiter.limit(REPORT_RATE)
    async def report_symptoms(request: Request, payload: SymptomReportIn):
        ...
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Ingest endpoints each signal several long-running loops; keep bursts bounded.
REPORT_RATE = "30/minute"

limiter = Limiter(key_func=get_remote_address)
