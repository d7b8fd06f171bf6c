# app/services/queue.py
from typing import Iterable, NamedTuple, Optional

from app.models.user import User
from app.utils.clock import as_utc


class RankedUser(NamedTuple):
    position: int
    user: User


def _rank_key(user: User):
    # Higher score first, then earlier joiners, then wallet for a total order
    return (-user.priority_score, as_utc(user.created_at), user.wallet_address)


def rank(users: Iterable[User]) -> list[RankedUser]:
    """Order users for the queue. Positions are 1-based and never stored."""
    ordered = sorted(users, key=_rank_key)
    return [RankedUser(position=i, user=u) for i, u in enumerate(ordered, start=1)]


def position_of(users: Iterable[User], wallet_address: str) -> Optional[int]:
    wallet = wallet_address.lower()
    for entry in rank(users):
        if entry.user.wallet_address == wallet:
            return entry.position
    return None
