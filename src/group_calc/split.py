"""Balance computation and minimum-transaction settlement planning.

Everything here is a pure function over in-memory inputs: no storage, no
settings lookup, no caching. Callers pass the base currency and the rate
table explicitly and re-run the computation after every change.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .currency import convert_currency
from .models import Expense, Member, MemberBalance, Settlement

logger = logging.getLogger(__name__)

# Above this many non-zero balances the subset DP is skipped (2^n states)
MAX_OPTIMAL_MEMBERS = 20


@dataclass
class NetPosition:
    """A member's outstanding net amount while a plan is being built."""

    id: str
    name: str
    net: int


# ============================================================================
# Balances
# ============================================================================


def split_shares(amount_cents: int, participant_ids: Iterable[str]) -> dict[str, int]:
    """
    Split an amount equally, handing leftover cents out one at a time.

    Participants are sorted by id; the first ``amount % n`` of them owe one
    extra cent, so the shares always add up to exactly ``amount_cents``.

    Example:
        split_shares(1000, ["c", "a", "b"]) -> {"a": 334, "b": 333, "c": 333}
    """
    ids = sorted(set(participant_ids))
    count = len(ids)
    if count == 0:
        return {}

    share = amount_cents // count
    remainder = amount_cents - share * count
    return {
        member_id: share + (1 if i < remainder else 0)
        for i, member_id in enumerate(ids)
    }


def compute_balances(
    members: list[Member],
    expenses: list[Expense],
    base_currency: str,
    rates: Mapping[str, float],
) -> list[MemberBalance]:
    """
    Compute net balances for all members of a group.

    For each expense the payer is credited the full amount (converted to the
    base currency) and every participant owes an equal share of it. The payer
    does not have to be a participant.

    Net = total paid - total owed
      positive -> creditor (others owe them)
      negative -> debtor (they owe others)

    Args:
        members: Group members, in display order
        expenses: Group expenses
        base_currency: Currency code all balances are reported in
        rates: Exchange rate table (code -> value in pivot units)

    Returns:
        One balance per member, in the same order as ``members``
    """
    paid: dict[str, int] = {m.id: 0 for m in members}
    owed: dict[str, int] = {m.id: 0 for m in members}

    for expense in expenses:
        if not expense.participant_ids:
            continue

        amount = convert_currency(
            expense.amount_cents, expense.currency, base_currency, rates
        )

        payer_id = expense.paid_by_member_id
        paid[payer_id] = paid.get(payer_id, 0) + amount

        shares = split_shares(amount, expense.participant_ids)
        for member_id, share in shares.items():
            owed[member_id] = owed.get(member_id, 0) + share

    return [
        MemberBalance(
            member_id=m.id,
            member_name=m.name,
            total_paid_cents=paid[m.id],
            total_owed_cents=owed[m.id],
            net_cents=paid[m.id] - owed[m.id],
        )
        for m in members
    ]


# ============================================================================
# Settlements
# ============================================================================


def suggest_settlements(balances: list[MemberBalance]) -> list[Settlement]:
    """
    Generate the settlement plan with the fewest payments.

    A set of n non-zero balances that splits into k disjoint zero-sum groups
    can be settled in n - k payments, each group settling internally. So the
    plan is built in two steps:

    1. Find the maximum number of disjoint zero-sum subsets (bitmask DP).
    2. Settle each subset greedily (largest debtor pays largest creditor).

    With more than MAX_OPTIMAL_MEMBERS non-zero balances the DP is skipped
    and the whole set is settled greedily; that plan always zeroes every
    balance but is not guaranteed minimal.

    Example:
        Alice +1000, Bob -1000, Carol +2000, Dave -2000
        -> Dave pays Carol 2000, Bob pays Alice 1000 (2 payments)

    Args:
        balances: Member balances as returned by compute_balances

    Returns:
        Payments in group order, then greedy matching order within a group
    """
    positions = [
        NetPosition(id=b.member_id, name=b.member_name, net=b.net_cents)
        for b in balances
        if b.net_cents != 0
    ]

    n = len(positions)
    if n == 0:
        return []

    if n > MAX_OPTIMAL_MEMBERS:
        logger.debug(
            f"{n} non-zero balances exceeds {MAX_OPTIMAL_MEMBERS}, "
            f"falling back to greedy settlement"
        )
        return greedy_settle(positions)

    groups = _zero_sum_groups([p.net for p in positions])
    logger.debug(f"Split {n} non-zero balances into {len(groups)} settlement groups")

    settlements: list[Settlement] = []
    for group in groups:
        settlements.extend(greedy_settle([positions[i] for i in group]))
    return settlements


def _subset_sums(values: list[int]) -> list[int]:
    """Sum of every subset, indexed by bitmask."""
    sums = [0] * (1 << len(values))
    for mask in range(1, len(sums)):
        lsb = mask & -mask
        sums[mask] = sums[mask ^ lsb] + values[lsb.bit_length() - 1]
    return sums


def _max_zero_sum_counts(sums: list[int]) -> list[int]:
    """
    counts[mask] = maximum number of disjoint zero-sum subsets inside mask.

    Ordering the members of mask so that each zero-sum subset is laid out
    contiguously turns every subset boundary into a zero-sum prefix, so

        counts[mask] = [sums[mask] == 0] + max(counts[mask - {i}] for i in mask)

    which is the same value as peeling zero-sum submasks recursively, in
    O(n * 2^n) instead of O(3^n).
    """
    counts = [0] * len(sums)
    for mask in range(1, len(sums)):
        best = 0
        rest = mask
        while rest:
            lsb = rest & -rest
            if counts[mask ^ lsb] > best:
                best = counts[mask ^ lsb]
            rest ^= lsb
        counts[mask] = best + (1 if sums[mask] == 0 else 0)
    return counts


def _peel_zero_sum(mask: int, sums: list[int], counts: list[int]) -> int:
    """
    Pick the zero-sum submask to settle first out of ``mask``.

    Submasks are scanned from ``mask`` downward and the first one that keeps
    the maximum group count is chosen. Returns 0 when ``mask`` holds no
    zero-sum subset.
    """
    target = counts[mask]
    if target == 0:
        return 0

    sub = mask
    while sub:
        if sums[sub] == 0 and counts[mask ^ sub] + 1 == target:
            return sub
        sub = (sub - 1) & mask
    return 0


def _zero_sum_groups(values: list[int]) -> list[list[int]]:
    """Partition indices of ``values`` into a maximum number of zero-sum groups."""
    n = len(values)
    sums = _subset_sums(values)
    counts = _max_zero_sum_counts(sums)

    groups: list[list[int]] = []
    remaining = (1 << n) - 1
    while remaining:
        sub = _peel_zero_sum(remaining, sums, counts)
        if not sub:
            # Nothing left splits further; with balanced input this set sums to 0
            if sums[remaining] != 0:
                logger.warning(
                    f"Balances do not sum to zero (off by {sums[remaining]} cents), "
                    f"settlement plan will leave a residue"
                )
            sub = remaining
        groups.append([i for i in range(n) if sub & (1 << i)])
        remaining ^= sub
    return groups


def greedy_settle(positions: list[NetPosition]) -> list[Settlement]:
    """
    Classic greedy settlement: match the largest creditor with the largest debtor.

    Each step transfers min(creditor, debtor) and moves past whoever reached
    zero (both, on a tie). Ties in size keep input order.
    """
    creditors = sorted(
        (NetPosition(p.id, p.name, p.net) for p in positions if p.net > 0),
        key=lambda p: -p.net,
    )
    debtors = sorted(
        (NetPosition(p.id, p.name, -p.net) for p in positions if p.net < 0),
        key=lambda p: -p.net,
    )

    settlements: list[Settlement] = []
    ci = di = 0

    while ci < len(creditors) and di < len(debtors):
        creditor = creditors[ci]
        debtor = debtors[di]
        transfer = min(creditor.net, debtor.net)

        if transfer > 0:
            settlements.append(
                Settlement(
                    from_member_id=debtor.id,
                    from_member_name=debtor.name,
                    to_member_id=creditor.id,
                    to_member_name=creditor.name,
                    amount_cents=transfer,
                )
            )

        creditor.net -= transfer
        debtor.net -= transfer

        if creditor.net == 0:
            ci += 1
        if debtor.net == 0:
            di += 1

    return settlements


def apply_settlements(
    balances: list[MemberBalance], settlements: list[Settlement]
) -> dict[str, int]:
    """
    Apply a settlement plan to member balances.

    Returns:
        Remaining net per member id; all zero when the plan settles everyone
    """
    remaining = {b.member_id: b.net_cents for b in balances}
    for settlement in settlements:
        remaining[settlement.from_member_id] = (
            remaining.get(settlement.from_member_id, 0) + settlement.amount_cents
        )
        remaining[settlement.to_member_id] = (
            remaining.get(settlement.to_member_id, 0) - settlement.amount_cents
        )
    return remaining
