"""
Heimursaga API — Routes Package
=================================

HTTP handlers only: parse the request, pick the caller, call one service
method, shape the response. Business rules live in `saga.services`.

Route Inventory (all under API_PREFIX, default /v1, unless noted):
    health.py       GET  /health                          (unprefixed)
    auth.py         /auth/*                               sessions, tokens, passwords
    explorers.py    /explorers/*                          profiles, follows, tiers
    user.py         /user/*                               the caller's own account
    entries.py      /entries/*                            journal entries, comments
    comments.py     /comments/{id}                        edit and delete
    expeditions.py  /expeditions/*                        expeditions, waypoints
    flags.py        /flags/*                              reports and moderation
    messages.py     /messages/*                           Explorer Pro messaging
    sponsor.py      /sponsor/*                            checkout, cancel
    payouts.py      /payouts/*                            Stripe Connect payouts
    stripe.py       POST /stripe/webhook                  (unprefixed)
                    /stripe/account, /stripe/account-link
    upload.py       POST /upload, GET /uploads/{path}
    search.py       GET /search, GET /map
    admin.py        /admin/*                              admin only
"""

from typing import Any, Dict

from saga.schemas.common import ErrorResponse

_DESCRIPTIONS = {
    400: "Invalid request",
    401: "Not signed in",
    403: "Not allowed",
    404: "Not found",
    409: "Conflict",
    429: "Rate limit exceeded",
    502: "Upstream service failed",
    503: "Service unavailable",
}


def error_responses(*codes: int) -> Dict[int, Dict[str, Any]]:
    """OpenAPI `responses` entries documenting error bodies."""
    return {code: {"description": _DESCRIPTIONS.get(code, "Error"), "model": ErrorResponse} for code in codes}
