"""
Heimursaga API — Bot Detection Guard
======================================

What:  A route dependency that rejects obvious non-browser clients on
       sensitive endpoints (signup, login, password reset, checkout).
How:   Static checks only: user-agent patterns, automation headers, and
       the presence of headers every browser sends. No state is kept.

Checks (in order, first failure wins):
    1. User-Agent empty or matching a scripted-client pattern
       → 403 "Suspicious user agent detected"
       (known search/social crawlers are allowed through)
    2. Any automation header present
       → 403 "Too many requests detected"
    3. Missing accept / accept-language / accept-encoding, or a
       runtime-identifying header
       → 403 "Suspicious request headers detected"
"""

import logging
import re
from typing import Mapping

from fastapi import Request

from saga.config import settings
from saga.exceptions import ForbiddenError

logger = logging.getLogger(__name__)

SUSPICIOUS_USER_AGENTS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"bot",
        r"crawler",
        r"spider",
        r"scraper",
        r"curl",
        r"wget",
        r"python",
        r"nodejs",
        r"axios",
        r"postman",
        r"insomnia",
    )
]

KNOWN_BOTS = (
    "googlebot",
    "bingbot",
    "slurp",
    "duckduckbot",
    "baiduspider",
    "yandexbot",
    "facebookexternalhit",
    "twitterbot",
    "whatsapp",
    "telegram",
    "discord",
)

AUTOMATION_HEADERS = ("x-requested-with", "x-automation", "x-robot")
REQUIRED_BROWSER_HEADERS = ("accept", "accept-language", "accept-encoding")
SUSPICIOUS_HEADERS = ("x-python-version", "x-node-version", "x-requested-with")


def is_suspicious_user_agent(user_agent: str) -> bool:
    if not user_agent:
        return True
    lowered = user_agent.lower()
    if any(bot in lowered for bot in KNOWN_BOTS):
        return False
    return any(pattern.search(user_agent) for pattern in SUSPICIOUS_USER_AGENTS)


def has_automation_headers(headers: Mapping[str, str]) -> bool:
    return any(headers.get(name) for name in AUTOMATION_HEADERS)


def has_suspicious_headers(headers: Mapping[str, str]) -> bool:
    if not all(headers.get(name) for name in REQUIRED_BROWSER_HEADERS):
        return True
    return any(headers.get(name) for name in SUSPICIOUS_HEADERS)


def check_request_headers(headers: Mapping[str, str]) -> None:
    """Raise ForbiddenError if the headers look automated."""
    if is_suspicious_user_agent(headers.get("user-agent", "")):
        raise ForbiddenError("Suspicious user agent detected")
    if has_automation_headers(headers):
        raise ForbiddenError("Too many requests detected")
    if has_suspicious_headers(headers):
        raise ForbiddenError("Suspicious request headers detected")


class BotDetectionGuard:
    """
    FastAPI dependency form of the checks above.

    Usage:
        @router.post("/signup", dependencies=[Depends(bot_guard)])
    """

    async def __call__(self, request: Request) -> None:
        if not settings.bot_detection_enabled:
            return
        try:
            check_request_headers(request.headers)
        except ForbiddenError as e:
            logger.warning(
                "Blocked request to %s: %s (ua=%r)",
                request.url.path,
                e.message,
                request.headers.get("user-agent", ""),
            )
            raise


bot_guard = BotDetectionGuard()
