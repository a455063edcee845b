"""Out-of-band invitations and their shareable URLs."""
import logging
from typing import List, Optional, Sequence

import redis as _redis

from app.errors import ConfigurationError, UpstreamFailure
from app.models import OutOfBandInvitation, ProtocolMessage
from app.utils import b64url_json, short_code

logger = logging.getLogger(__name__)


class ShortLinkStore:
    def __init__(self, redis, base_url: str, ttl_seconds: int):
        self.redis = redis
        self.base_url = base_url.rstrip("/")
        self.ttl_seconds = ttl_seconds

    def shorten(self, url: str) -> str:
        code = short_code()
        self.redis.setex(f"short:{code}", self.ttl_seconds, url)
        return f"{self.base_url}/s/{code}"

    def resolve(self, code: str) -> Optional[str]:
        return self.redis.get(f"short:{code}")


class InvitationPackager:
    def __init__(self, runtime, endpoints: List[str], shortener: Optional[ShortLinkStore] = None):
        self.runtime = runtime
        self.endpoints = endpoints
        self.shortener = shortener

    def domain(self) -> str:
        if not self.endpoints:
            raise ConfigurationError("No public endpoint configured for the agent")
        return self.endpoints[0]

    def package_invitation(self, messages: Sequence[ProtocolMessage], multi_use: bool) -> OutOfBandInvitation:
        domain = self.domain()
        record = self.runtime.create_invitation([m.attachment() for m in messages], multi_use)
        invitation = record.get("invitation")
        if not invitation:
            raise UpstreamFailure("agent runtime returned no invitation", {"record": record})
        invitation_id = record.get("invi_msg_id") or invitation.get("@id")
        return OutOfBandInvitation(
            id=invitation_id,
            invitation_url=f"{domain}?oob={b64url_json(invitation)}",
            messages=list(messages),
            multi_use=multi_use,
        )

    def shorten_url(self, url: str) -> str:
        """Best effort: any shortening failure falls back to the full URL."""
        if self.shortener is None:
            return url
        try:
            return self.shortener.shorten(url)
        except _redis.RedisError as exc:
            logger.warning("url shortening failed, using the full invitation url: %s", exc)
            return url
