"""Caller identity forwarded by the upstream session layer.

Sessions are issued elsewhere; the gateway in front of this service
authenticates the user and forwards who they are in request headers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fastapi import Header, HTTPException, status

from ..ledger.errors import Forbidden


class Role(str, Enum):
    BIDDER = "bidder"
    CELEBRITY = "celebrity"
    NGO = "ngo"


class Capability(str, Enum):
    PLACE_BID = "place-bid"
    CREATE_AUCTION = "create-auction"
    MANAGE_AUCTION = "manage-auction"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.BIDDER: frozenset({Capability.PLACE_BID}),
    Role.CELEBRITY: frozenset({Capability.CREATE_AUCTION, Capability.MANAGE_AUCTION}),
    Role.NGO: frozenset(),
}


@dataclass(frozen=True)
class Identity:
    user_id: str
    name: str
    role: Role | None

    @property
    def capabilities(self) -> frozenset[Capability]:
        if self.role is None:
            return frozenset()
        return ROLE_CAPABILITIES[self.role]

    def require(self, capability: Capability) -> None:
        if capability not in self.capabilities:
            role = self.role.value if self.role else "anonymous"
            raise Forbidden(f"role {role} lacks the {capability.value} capability")


def _parse_role(value: str | None) -> Role | None:
    if not value:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


async def get_identity(
    x_user_id: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Identity:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return Identity(
        user_id=x_user_id,
        name=x_user_name or x_user_email or x_user_id,
        role=_parse_role(x_user_role),
    )
