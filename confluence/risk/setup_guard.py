"""Setup geometry guard — pure math, no I/O.

Every candidate passes through the same corrections regardless of which
strategy produced it:

    1. The stop must sit on the losing side of the optimal entry.  If it
       does not, a stop 1% away from the entry is forced.
    2. Targets on the losing side of the entry are dropped.
    3. The first target must pay at least 1.5R.  Nearer targets are
       replaced by one placed exactly at 1.5R; with no targets at all a
       1.5R target is created.
    4. Risk:reward is recomputed for every target and targets are sorted
       nearest first.
"""

from dataclasses import dataclass, field, replace

from confluence.strategy.models import SetupCandidate, Target, validate_direction

FORCED_STOP_PCT = 0.01
MIN_FIRST_TARGET_RR = 1.5


@dataclass(frozen=True)
class GuardedSetup:
    candidate: SetupCandidate
    corrections: list[str] = field(default_factory=list)


def _reward_multiple(entry: float, price: float, risk: float, long: bool) -> float:
    move = price - entry if long else entry - price
    return move / risk


def enforce_setup_geometry(candidate: SetupCandidate) -> GuardedSetup:
    """Return *candidate* with a valid stop and targets, plus what changed.

    Raises ``ValueError`` if the candidate's direction is not LONG/SHORT.
    """
    long = validate_direction(candidate.direction) == "LONG"
    entry = candidate.entry_zone.optimal
    stop = candidate.stop_loss
    corrections: list[str] = []

    wrong_side = stop >= entry if long else stop <= entry
    if wrong_side:
        stop = entry * (1 - FORCED_STOP_PCT) if long else entry * (1 + FORCED_STOP_PCT)
        corrections.append("stop_forced_1pct")

    risk = abs(entry - stop)
    sign = 1 if long else -1

    scored = [
        (t, _reward_multiple(entry, t.price, risk, long))
        for t in candidate.targets
    ]
    valid = [(t, rr) for t, rr in scored if rr > 0]
    if len(valid) < len(scored):
        corrections.append("dropped_wrong_side_targets")
    valid.sort(key=lambda pair: pair[1])

    if not valid:
        valid = [(Target(price=entry + sign * risk * MIN_FIRST_TARGET_RR, risk_reward=MIN_FIRST_TARGET_RR,
                         label="1.5R minimum"), MIN_FIRST_TARGET_RR)]
        corrections.append("created_min_target")
    elif valid[0][1] < MIN_FIRST_TARGET_RR:
        valid = [(t, rr) for t, rr in valid if rr >= MIN_FIRST_TARGET_RR]
        extended = Target(
            price=entry + sign * risk * MIN_FIRST_TARGET_RR,
            risk_reward=MIN_FIRST_TARGET_RR,
            label="extended to 1.5R",
        )
        valid.insert(0, (extended, MIN_FIRST_TARGET_RR))
        corrections.append("extended_first_target")

    targets = [
        replace(t, risk_reward=round(rr, 2))
        for t, rr in valid
    ]
    return GuardedSetup(
        candidate=replace(candidate, stop_loss=stop, targets=targets),
        corrections=corrections,
    )
