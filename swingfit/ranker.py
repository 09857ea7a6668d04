import itertools
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
from loguru import logger

from swingfit.models import EquipmentCatalog, Recommendation, SwingFeatures

MAX_RECOMMENDATIONS = 3


@dataclass(frozen=True)
class RecommendationRule:
    style: str
    applies: Callable[[SwingFeatures], bool]
    flex: Callable[[SwingFeatures], str]
    score: Callable[[SwingFeatures], float]
    head_tags: Tuple[str, ...]
    shaft_tags: Tuple[str, ...]
    reason: str
    characteristics: Tuple[str, ...]


# Emission order is the tie-break order
RULES = (
    RecommendationRule(
        style="power",
        applies=lambda f: f.max_acceleration > 15,
        flex=lambda f: "S",
        score=lambda f: min(95.0, 70 + f.max_acceleration),
        head_tags=("low_spin", "power_hitter"),
        shaft_tags=("power_hitter", "hard_hitter", "low_launch"),
        reason="Low-spin design built for high head speed",
        characteristics=("distance", "low_spin", "power_hitter")
    ),
    RecommendationRule(
        style="control",
        applies=lambda f: f.smoothness > 60,
        flex=lambda f: "S" if f.max_acceleration > 12 else "R",
        score=lambda f: min(92.0, 60 + f.smoothness),
        head_tags=("workability", "control"),
        shaft_tags=("stability", "balanced"),
        reason="Workable model suited to a stable, repeatable swing",
        characteristics=("control", "mid_launch", "workability")
    ),
    RecommendationRule(
        style="balanced",
        applies=lambda f: True,
        flex=lambda f: "S" if f.max_acceleration > 14 else "R",
        score=lambda f: min(88.0, 50 + (f.smoothness + f.max_acceleration) / 2),
        head_tags=("balanced",),
        shaft_tags=("balanced", "all_round", "stability"),
        reason="All-round model balancing distance and control",
        characteristics=("balanced", "mid_high_launch", "all_round")
    ),
)


def rank(features: SwingFeatures, catalog: EquipmentCatalog,
         top_n: int = MAX_RECOMMENDATIONS) -> List[Recommendation]:
    if catalog.is_empty:
        logger.warning("Equipment catalog is empty - no recommendations")
        return []

    ids = itertools.count(1)
    emitted: List[Recommendation] = []

    for rule in RULES:
        if not rule.applies(features):
            continue

        recommendation = _build(rule, features, catalog, next(ids))
        if recommendation is not None:
            emitted.append(recommendation)

    # sorted() is stable, equal scores keep emission order
    ranked = sorted(emitted, key=lambda rec: rec.match_percentage, reverse=True)
    limit = max(0, min(top_n, MAX_RECOMMENDATIONS))

    logger.debug(f"Ranked {len(emitted)} recommendations: {[rec.style for rec in ranked]}")
    return ranked[:limit]


def _build(rule: RecommendationRule, features: SwingFeatures, catalog: EquipmentCatalog,
           recommendation_id: int) -> Optional[Recommendation]:
    flex = rule.flex(features)
    head = catalog.find_head(rule.head_tags)
    shaft = catalog.find_shaft(flex, rule.shaft_tags)
    if head is None or shaft is None:
        return None

    return Recommendation(
        id=recommendation_id,
        style=rule.style,
        head=head,
        shaft=shaft,
        flex=flex,
        match_percentage=float(rule.score(features)),
        reason=rule.reason,
        characteristics=rule.characteristics
    )
