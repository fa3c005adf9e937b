"""Rule evaluator: match user facts against the catalog.

Pure and deterministic. The same facts and unlocked set always yield the
same ids in catalog order, so a cycle can be re-run on retries without
side effects beyond the ledger.
"""

from __future__ import annotations

from collections.abc import Collection

from applytrak.achievements.catalog import DEFAULT_CATALOG, AchievementCatalog
from applytrak.achievements.facts import UserFacts
from applytrak.achievements.requirements import EvaluationContext


def evaluate(
    facts: UserFacts,
    already_unlocked: Collection[str],
    catalog: AchievementCatalog = DEFAULT_CATALOG,
) -> list[str]:
    """Return ids of achievements that are newly eligible, in catalog order.

    An achievement is eligible when it is not already unlocked and all of
    its requirements hold. Unlock-count requirements see the catalog ids
    already unlocked plus those found eligible earlier in this pass.
    """
    unlocked = set(already_unlocked)
    unlocked_count = sum(1 for achievement_id in unlocked if achievement_id in catalog)

    eligible: list[str] = []
    for definition in catalog:
        if definition.id in unlocked:
            continue
        ctx = EvaluationContext(unlocked_count=unlocked_count + len(eligible))
        if definition.is_satisfied(facts, ctx):
            eligible.append(definition.id)
    return eligible


def achievement_progress(
    facts: UserFacts,
    already_unlocked: Collection[str],
    catalog: AchievementCatalog = DEFAULT_CATALOG,
) -> dict[str, tuple[int, int]]:
    """(current, target) for every catalog entry, keyed by id."""
    unlocked_count = sum(1 for achievement_id in set(already_unlocked) if achievement_id in catalog)
    ctx = EvaluationContext(unlocked_count=unlocked_count)
    progress: dict[str, tuple[int, int]] = {}
    for definition in catalog:
        if definition.id in already_unlocked:
            target = definition.progress(facts, ctx)[1]
            progress[definition.id] = (target, target)
        else:
            progress[definition.id] = definition.progress(facts, ctx)
    return progress
