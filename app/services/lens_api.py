import logging
from functools import lru_cache
from typing import Optional

import httpx

from app.core.config import settings
from app.core.errors import NotFoundError, ServiceUnavailableError

logger = logging.getLogger(__name__)

PROFILE_OWNER_QUERY = """
query ProfileOwner($profileId: ProfileId!) {
  profile(request: { forProfileId: $profileId }) {
    id
    ownedBy { address }
  }
}
"""


class LensLookup:
    def __init__(self, api_url: str, timeout: float):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def owner_of(self, profile_id: str) -> str:
        """Lower-cased owner wallet of a Lens profile."""
        payload = {"query": PROFILE_OWNER_QUERY, "variables": {"profileId": profile_id}}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                res = client.post(self.api_url, json=payload)
                res.raise_for_status()
                data = res.json()
        except httpx.HTTPError as e:
            logger.error("Lens lookup failed for profile %s: %s", profile_id, e)
            raise ServiceUnavailableError("Lens lookup unavailable")

        profile = (data.get("data") or {}).get("profile")
        if not profile:
            raise NotFoundError("Unknown Lens profile")
        return profile["ownedBy"]["address"].lower()


@lru_cache(maxsize=1)
def get_lens_lookup() -> Optional[LensLookup]:
    if not settings.LENS_VERIFY_OWNER:
        return None
    return LensLookup(settings.LENS_API_URL, settings.HTTP_TIMEOUT_SECONDS)
