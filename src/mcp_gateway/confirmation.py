"""
Confirmation Gate
Single-use, short-lived tokens that bind a previewed destructive action to
its later execution

A token is issued for an ActionSignature (operation + resolved scope +
affected count). Validation consumes it, whatever the outcome, so a token can
authorize at most one execution, and only of the exact scope that was
previewed.
"""

import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from .infrastructure.error_handling import InvalidConfirmTokenError
from .infrastructure.state_store import StateStore
from .infrastructure.structured_logging import get_logger

logger = get_logger("confirmation")

_KEY_PREFIX = "confirm:"


@dataclass(frozen=True)
class ActionSignature:
    """What a destructive call would do, reduced to a comparable digest"""
    operation: str
    scope: Mapping[str, Any] = field(default_factory=dict)
    affected_count: int = 0

    def digest(self) -> str:
        canonical = json.dumps(
            {"op": self.operation, "scope": self.scope, "count": self.affected_count},
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class IssuedToken:
    token: str
    expires_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"confirmToken": self.token, "expiresAt": self.expires_at.isoformat()}


class ConfirmationGate:
    """Issues and redeems confirmation tokens held in an injected StateStore"""

    def __init__(self, store: StateStore, ttl: float = 300.0):
        if ttl <= 0:
            raise ValueError("Confirmation ttl must be positive")
        self.store = store
        self.ttl = ttl

    async def issue(self, signature: ActionSignature) -> IssuedToken:
        token = secrets.token_urlsafe(24)
        expires_at = await self.store.put(_KEY_PREFIX + token, signature.digest(), self.ttl)
        logger.info("confirm_token_issued",
                    operation=signature.operation,
                    affected_count=signature.affected_count,
                    ttl_s=self.ttl)
        return IssuedToken(token=token, expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc))

    async def validate(self, token: Optional[str], signature: ActionSignature) -> bool:
        """True exactly once per token, and only for the signature it was issued for"""
        if not token:
            return False

        stored_digest = await self.store.take(_KEY_PREFIX + token)
        if stored_digest is None:
            logger.warning("confirm_token_rejected", operation=signature.operation, reason="unknown_used_or_expired")
            return False

        if not hmac.compare_digest(stored_digest, signature.digest()):
            logger.warning("confirm_token_rejected", operation=signature.operation, reason="scope_mismatch")
            return False

        return True

    async def require(self, token: Optional[str], signature: ActionSignature) -> None:
        if not await self.validate(token, signature):
            raise InvalidConfirmTokenError(
                f"confirmToken is not valid for this {signature.operation} call "
                f"(expired, already used, or issued for a different scope)",
                context={"affectedCount": signature.affected_count},
            )
