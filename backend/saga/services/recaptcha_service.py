"""
Heimursaga API — reCAPTCHA v3 Verification
============================================

Verification is disabled (always passes) when no secret key is configured.
"""

import logging
from typing import Optional

import httpx

from saga.config import settings
from saga.exceptions import BadRequestError

logger = logging.getLogger(__name__)

RECAPTCHA_TIMEOUT = 5.0


class RecaptchaService:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # Injected in tests (httpx.MockTransport)
        self._transport = transport

    async def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> bool:
        if not settings.recaptcha_secret_key:
            return True
        if not token:
            return False

        form = {"secret": settings.recaptcha_secret_key, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            async with httpx.AsyncClient(timeout=RECAPTCHA_TIMEOUT, transport=self._transport) as client:
                response = await client.post(settings.recaptcha_verify_url, data=form)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("reCAPTCHA verification request failed: %s", e)
            return False

        score = payload.get("score")
        passed = bool(payload.get("success")) and (score is None or score >= settings.recaptcha_min_score)
        if not passed:
            logger.info(
                "reCAPTCHA rejected: success=%s score=%s errors=%s",
                payload.get("success"), score, payload.get("error-codes"),
            )
        return passed

    async def require(self, token: Optional[str], remote_ip: Optional[str] = None) -> None:
        """Raise BadRequestError unless the token verifies."""
        if not await self.verify(token, remote_ip):
            raise BadRequestError("recaptcha verification failed")


# Singleton instance
recaptcha_service = RecaptchaService()
