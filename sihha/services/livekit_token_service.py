"""
LiveKit Voice Call Access Service
==================================

Issues short-lived access tokens for the audio-only call that backs a live
session:
- Deterministic call room naming ({prefix}-{room}-{session})
- Join tokens minted with the official livekit-api SDK
- Token TTL floor of 60 seconds
"""

import logging
import re
from datetime import timedelta
from typing import Optional

from livekit import api

from sihha.config import settings
from sihha.core.clock import to_iso
from sihha.core.error_handling import DependencyUnavailableError

logger = logging.getLogger(__name__)

MAX_ROOM_NAME_LENGTH = 128


def sanitize_segment(value, fallback: str = "") -> str:
    cleaned = re.sub(r"[^0-9A-Za-z_-]", "", str(value or ""))
    return cleaned or fallback


class LiveKitTokenService:
    """
    Access token issuer for the LiveKit media server.

    The media transport itself is LiveKit's concern; this service only names
    the call room and signs the join grant.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        room_prefix: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.url = settings.LIVEKIT_URL if url is None else url
        self.api_key = settings.LIVEKIT_API_KEY if api_key is None else api_key
        self.api_secret = settings.LIVEKIT_API_SECRET if api_secret is None else api_secret
        self.room_prefix = settings.LIVEKIT_ROOM_PREFIX if room_prefix is None else room_prefix
        if ttl_seconds is None:
            self.ttl_seconds = settings.livekit_token_ttl_seconds()
        else:
            self.ttl_seconds = max(60, int(ttl_seconds))

        if not self.is_configured():
            logger.warning("LIVEKIT_URL / LIVEKIT_API_KEY / LIVEKIT_API_SECRET not set - live calls disabled")

    def is_configured(self) -> bool:
        return bool(self.url and self.api_key and self.api_secret)

    def build_room_name(self, room_id: str, requested_at=None, responded_at=None) -> str:
        """
        Call room name for one negotiated session.

        Both participants of the same negotiation share requested_at, so they
        land in the same call; a new negotiation gets a new name.
        """
        room_segment = sanitize_segment(room_id, "room")
        session_token = sanitize_segment(to_iso(requested_at) or to_iso(responded_at) or "session", "session")
        prefix = sanitize_segment(self.room_prefix, "sihha")
        return f"{prefix}-{room_segment}-{session_token}"[:MAX_ROOM_NAME_LENGTH]

    def create_access_token(self, room_name: str, identity: str, name: str) -> str:
        """
        Sign a join token for one participant.

        Args:
            room_name: Call room from build_room_name
            identity: Stable participant identity (the user id)
            name: Display name shown to the other side

        Returns:
            Signed JWT string
        """
        if not self.is_configured():
            raise DependencyUnavailableError("livekit-not-configured", "Call server is not configured on backend.")

        grants = api.VideoGrants(
            room_join=True,
            room=room_name,
            can_publish=True,
            can_publish_data=True,
            can_subscribe=True,
        )
        try:
            return (
                api.AccessToken(self.api_key, self.api_secret)
                .with_identity(identity)
                .with_name(name)
                .with_grants(grants)
                .with_ttl(timedelta(seconds=self.ttl_seconds))
                .to_jwt()
            )
        except Exception as e:
            logger.error(f"Failed to sign call token: {type(e).__name__}")
            raise DependencyUnavailableError("livekit-token-failed", "Unable to create call access token.")
