"""Actor model and per-operation capability checks.

Each engine entry point names its Operation; `_REQUIRED` maps it to the one
Capability the actor must hold for that subject. `decide` is a pure function
returning a tagged decision, `authorize` raises UnauthorizedError on deny.
"""

from dataclasses import dataclass, field
from enum import Enum

from src.mk_common.errors import UnauthorizedError

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, as attested by the identity collaborator."""

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


class Capability(str, Enum):
    ANY_USER = "ANY_USER"
    LISTING_OWNER = "LISTING_OWNER"
    ORDER_SELLER = "ORDER_SELLER"
    ORDER_BUYER = "ORDER_BUYER"
    ORDER_PARTY = "ORDER_PARTY"
    ADMIN = "ADMIN"


class Operation(str, Enum):
    CREATE_LISTING = "CREATE_LISTING"
    UPDATE_LISTING = "UPDATE_LISTING"
    REMOVE_LISTING = "REMOVE_LISTING"
    CREATE_ORDER = "CREATE_ORDER"
    CONFIRM_ORDER = "CONFIRM_ORDER"
    CANCEL_ORDER = "CANCEL_ORDER"
    VIEW_ORDER = "VIEW_ORDER"
    CONFIRM_SELLER_TRANSFERRED = "CONFIRM_SELLER_TRANSFERRED"
    CONFIRM_BUYER_RECEIVED = "CONFIRM_BUYER_RECEIVED"
    POST_TRADE_MESSAGE = "POST_TRADE_MESSAGE"
    VIEW_TRADE_SESSION = "VIEW_TRADE_SESSION"
    ADMIN_ADJUST_BALANCE = "ADMIN_ADJUST_BALANCE"
    RUN_MAINTENANCE = "RUN_MAINTENANCE"


_REQUIRED: dict[Operation, Capability] = {
    Operation.CREATE_LISTING: Capability.ANY_USER,
    Operation.UPDATE_LISTING: Capability.LISTING_OWNER,
    Operation.REMOVE_LISTING: Capability.LISTING_OWNER,
    Operation.CREATE_ORDER: Capability.ANY_USER,
    Operation.CONFIRM_ORDER: Capability.ORDER_SELLER,
    Operation.CANCEL_ORDER: Capability.ORDER_PARTY,
    Operation.VIEW_ORDER: Capability.ORDER_PARTY,
    Operation.CONFIRM_SELLER_TRANSFERRED: Capability.ORDER_SELLER,
    Operation.CONFIRM_BUYER_RECEIVED: Capability.ORDER_BUYER,
    Operation.POST_TRADE_MESSAGE: Capability.ORDER_PARTY,
    Operation.VIEW_TRADE_SESSION: Capability.ORDER_PARTY,
    Operation.ADMIN_ADJUST_BALANCE: Capability.ADMIN,
    Operation.RUN_MAINTENANCE: Capability.ADMIN,
}

# Admins may look at any party's order or session, never act as a party
_ADMIN_READABLE = frozenset({Operation.VIEW_ORDER, Operation.VIEW_TRADE_SESSION})


@dataclass(frozen=True)
class Subject:
    """Ownership facts of the resource being acted on."""

    owner_id: str | None = None
    buyer_id: str | None = None
    seller_id: str | None = None


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    operation: Operation
    required: Capability
    reason: str = ""


def _holds(actor: Actor, capability: Capability, subject: Subject) -> bool:
    if capability is Capability.ANY_USER:
        return True
    if capability is Capability.ADMIN:
        return actor.is_admin
    if capability is Capability.LISTING_OWNER:
        return subject.owner_id is not None and actor.user_id == subject.owner_id
    if capability is Capability.ORDER_SELLER:
        return subject.seller_id is not None and actor.user_id == subject.seller_id
    if capability is Capability.ORDER_BUYER:
        return subject.buyer_id is not None and actor.user_id == subject.buyer_id
    return actor.user_id in {subject.buyer_id, subject.seller_id} - {None}


def decide(
    actor: Actor, operation: Operation, subject: Subject | None = None
) -> AuthorizationDecision:
    required = _REQUIRED[operation]
    subj = subject or Subject()
    if _holds(actor, required, subj):
        return AuthorizationDecision(True, operation, required)
    if operation in _ADMIN_READABLE and actor.is_admin:
        return AuthorizationDecision(True, operation, required, "admin read")
    return AuthorizationDecision(
        False,
        operation,
        required,
        f"{operation.value} requires {required.value}",
    )


def authorize(
    actor: Actor, operation: Operation, subject: Subject | None = None
) -> AuthorizationDecision:
    decision = decide(actor, operation, subject)
    if not decision.allowed:
        raise UnauthorizedError(decision.reason)
    return decision
