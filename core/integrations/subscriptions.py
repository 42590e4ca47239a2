"""Subscription/billing integration: resolves a recruiter's tier at hire time."""

import logging
from typing import Dict, Optional

import httpx

from database.models.recruiters import RecruiterTier

logger = logging.getLogger(__name__)


class TierServiceError(Exception):
    """The billing service could not answer."""


class TierService:
    async def get_recruiter_tier(self, recruiter_id: int) -> RecruiterTier:
        raise NotImplementedError


class StaticTierService(TierService):
    """Fixed tier table; unknown recruiters are on the default tier."""

    def __init__(
        self,
        tiers: Optional[Dict[int, RecruiterTier]] = None,
        default: RecruiterTier = RecruiterTier.STARTER,
    ):
        self.tiers = dict(tiers or {})
        self.default = default

    async def get_recruiter_tier(self, recruiter_id: int) -> RecruiterTier:
        return self.tiers.get(recruiter_id, self.default)


class HttpTierService(TierService):
    """
    Billing service client.

    ``GET {base_url}/subscriptions/recruiters/{id}`` returning ``{"tier": "pro"}``.
    Recruiters without a subscription (404) are on Starter.
    """

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def get_recruiter_tier(self, recruiter_id: int) -> RecruiterTier:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}/subscriptions/recruiters/{recruiter_id}"
                )
        except httpx.HTTPError as e:
            logger.error(f"Billing service request failed for recruiter {recruiter_id}: {e}")
            raise TierServiceError(str(e)) from e

        if response.status_code == 404:
            return RecruiterTier.STARTER
        if not response.is_success:
            raise TierServiceError(
                f"Unexpected status {response.status_code} resolving tier for recruiter {recruiter_id}"
            )

        tier = RecruiterTier.try_parse(response.json().get("tier"))
        if tier is None:
            logger.warning(f"Unknown tier for recruiter {recruiter_id}, using starter")
            return RecruiterTier.STARTER
        return tier
