"""
Split distribution.

Both distributions are exact: the shares always add up to the total, to
the paisa. Leftover paise go to members earlier in the input order.
"""

from financely.models.household import Split


def compute_equal_split(total_cents: int, member_ids: list[str]) -> list[Split]:
    """
    Share `total_cents` equally between `member_ids`.

    Everyone gets floor(total / n); the first (total mod n) members get one
    extra paisa each. compute_equal_split(1000, ["a", "b", "c"]) gives
    334, 333, 333.

    Returns an empty list when there are no members or nothing to share.
    """
    if not member_ids or total_cents <= 0:
        return []

    share, remainder = divmod(total_cents, len(member_ids))
    return [
        Split(member_id=member_id, amount=share + (1 if i < remainder else 0))
        for i, member_id in enumerate(member_ids)
    ]


def compute_proportional_split(
    total_cents: int,
    weights: list[tuple[str, int]],
) -> list[Split]:
    """
    Share `total_cents` in proportion to integer weights.

    Largest-remainder method: everyone gets the floor of their exact
    share, then leftover paise go to the largest fractional parts
    (earlier members win ties).

    Args:
        total_cents: Amount to distribute
        weights: (member_id, weight) pairs in display order

    Raises:
        ValueError: If any weight is negative
    """
    if any(weight < 0 for _, weight in weights):
        raise ValueError("Split weights cannot be negative")

    weight_sum = sum(weight for _, weight in weights)
    if total_cents <= 0 or weight_sum == 0:
        return []

    shares = []
    remainders = []
    for i, (_, weight) in enumerate(weights):
        share, remainder = divmod(total_cents * weight, weight_sum)
        shares.append(share)
        remainders.append((-remainder, i))

    leftover = total_cents - sum(shares)
    for _, i in sorted(remainders)[:leftover]:
        shares[i] += 1

    return [
        Split(member_id=member_id, amount=shares[i])
        for i, (member_id, _) in enumerate(weights)
    ]


def drop_zero_splits(splits: list[Split]) -> list[Split]:
    return [split for split in splits if split.amount > 0]
