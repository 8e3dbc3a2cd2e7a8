"""Actor identity extraction from HTTP requests."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from starlette.requests import Request

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActorIdentity:
    """Who is calling. ``actor_id`` is None for anonymous callers."""
    actor_id: str | None = None
    source: str = "anonymous"     # header | jwt | basic | custom | anonymous
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def is_anonymous(self) -> bool:
        return not self.actor_id

    def __str__(self) -> str:
        return self.actor_id or "anonymous"


@dataclass
class IdentityExtractor:
    """
    Extracts the acting member/officer from HTTP requests.

    Tried in order:
    1. Custom extractor (if configured)
    2. Actor header (X-Actor-ID)
    3. JWT Bearer token (``sub`` claim; signature is checked upstream)
    4. Basic auth username
    5. Anonymous
    """
    # Header names
    actor_header: str = "X-Actor-ID"
    auth_header: str = "Authorization"

    # JWT claim holding the actor id
    jwt_actor_claim: str = "sub"

    # Custom extractor function (for complex scenarios)
    custom_extractor: Callable[[Request], ActorIdentity | None] | None = None

    def extract(self, request: Request) -> ActorIdentity:
        """Extract the caller's identity from a request."""
        if self.custom_extractor:
            identity = self.custom_extractor(request)
            if identity:
                return identity

        actor_id = request.headers.get(self.actor_header, "").strip()
        if actor_id:
            return ActorIdentity(actor_id=actor_id, source="header")

        identity = self._extract_jwt(request)
        if identity:
            return identity

        identity = self._extract_basic(request)
        if identity:
            return identity

        return ActorIdentity()

    def _extract_jwt(self, request: Request) -> ActorIdentity | None:
        """Extract identity from JWT Bearer token."""
        header = request.headers.get(self.auth_header, "")
        if not header.startswith("Bearer "):
            return None

        # JWT format: header.payload.signature
        parts = header[7:].split(".")
        if len(parts) != 3:
            return None

        payload_b64 = parts[1]
        padding = 4 - len(payload_b64) % 4
        if padding != 4:
            payload_b64 += "=" * padding

        try:
            payload = json.loads(base64.urlsafe_b64decode(payload_b64))
        except (binascii.Error, ValueError) as e:
            logger.debug(f"Failed to extract JWT identity: {e}")
            return None

        if not isinstance(payload, dict) or not payload.get(self.jwt_actor_claim):
            return None
        return ActorIdentity(
            actor_id=str(payload[self.jwt_actor_claim]),
            source="jwt",
            claims=payload,
        )

    def _extract_basic(self, request: Request) -> ActorIdentity | None:
        """Extract identity from Basic auth (service accounts)."""
        header = request.headers.get(self.auth_header, "")
        if not header.startswith("Basic "):
            return None

        try:
            creds = base64.b64decode(header[6:]).decode("utf-8")
            username, _ = creds.split(":", 1)
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            logger.debug(f"Failed to extract Basic auth identity: {e}")
            return None

        return ActorIdentity(actor_id=username, source="basic") if username else None


# Default extractor instance
_default_extractor = IdentityExtractor()


def extract_identity(request: Request) -> ActorIdentity:
    """Extract identity using default extractor."""
    return _default_extractor.extract(request)
