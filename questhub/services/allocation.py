from dataclasses import dataclass
from typing import Dict, Iterable, List

from questhub.core.errors import NoEligibleParticipantsError, NoParticipationError
from questhub.models.progress import ProgressEntry


@dataclass(frozen=True)
class PlannedAllocation:
    user_id: str
    address: str
    amount: int


def share_of(points: int, total_points: int, reward: int) -> int:
    """floor(points * reward / total_points) in integer arithmetic."""
    if total_points <= 0 or points <= 0:
        return 0
    return points * reward // total_points


def compute_allocations(entries: Iterable[ProgressEntry], reward: int) -> List[PlannedAllocation]:
    entries = list(entries)
    total_points = sum(e.points_collected for e in entries)
    if total_points == 0:
        raise NoParticipationError()

    # the pool keys allocations by address, so participants sharing a wallet share one entry
    by_address: Dict[str, PlannedAllocation] = {}
    for entry in entries:
        if entry.points_collected <= 0 or not entry.wallet_address:
            continue
        amount = share_of(entry.points_collected, total_points, reward)
        if amount == 0:
            # a zero claim would be rejected by the validator
            continue
        previous = by_address.get(entry.wallet_address)
        if previous:
            amount += previous.amount
        by_address[entry.wallet_address] = PlannedAllocation(
            previous.user_id if previous else entry.user_id, entry.wallet_address, amount
        )

    if not by_address:
        raise NoEligibleParticipantsError()
    return list(by_address.values())
