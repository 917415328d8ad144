"""
Agent Scoring Engine Service

Ranks candidate agents for a lead with a weighted multi-factor model. Each of
the seven components is normalized to a 0-1 raw score, scaled to 0-10, then
weighted by its configured percentage:

    points = (weight / 100) * (component_score * 10)
    total  = round(sum(points), 2)

With weights summing to 100 the total therefore lands on a 0-10 scale.

Components and their neutral defaults:
- industryPerf: win rate for the lead's industry, 0.5 when unknown
- conversion: overall conversion rate, 0 when missing
- avgDeal: avgDealSize / avgDealReference, 0 when missing
- hotStreak: 1.0 when hot, else hotDealsCount / hotStreakMinDeals
- responseSpeed: 1 - medianResponseMinutes / responseReferenceMinutes,
  1 when missing
- burnout: 1 - burnout under the default penalty polarity, raw burnout
  under reward polarity; missing burnout counts as 0
- availabilityCap: placeholder capacity constant (1.0 by default)

A disabled component contributes 0 regardless of its metric. Scoring never
raises: malformed or missing snapshot data falls back to the neutral default.
"""

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from lead_router.core.exceptions import ConfigurationInvalidError
from lead_router.models.enums import BurnoutPolarity, RecommendationBand, ScoringComponent
from lead_router.models.schemas import AgentPerformanceSnapshot, AgentScore, ScoringConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

NEUTRAL_INDUSTRY_RATE: float = 0.5

# Keys a lead record may carry its industry under
INDUSTRY_KEYS: Tuple[str, ...] = ('industry', 'lead_industry')

WEIGHT_SUM_TARGET: float = 100.0
WEIGHT_SUM_TOLERANCE: float = 0.5

# Band thresholds on a 0-100 scale (total * 10)
BAND_THRESHOLDS: Tuple[Tuple[float, RecommendationBand], ...] = (
    (80.0, RecommendationBand.EXCELLENT),
    (60.0, RecommendationBand.GOOD),
    (40.0, RecommendationBand.FAIR),
)


# =============================================================================
# Helpers
# =============================================================================


def clamp01(value: float) -> float:
    if value < 0:
        return 0.0
    if value > 1:
        return 1.0
    return float(value)


def _as_float(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


def _lead_industry(lead: Mapping[str, Any]) -> str:
    for key in INDUSTRY_KEYS:
        value = lead.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
    return ''


def _burnout_fraction(value: Optional[float]) -> float:
    burnout = _as_float(value, 0.0)
    # Profiles computed on a 0-100 scale are folded onto 0-1
    if burnout > 1:
        burnout = burnout / 100.0
    return clamp01(burnout)


# =============================================================================
# Component Scores
# =============================================================================


def component_scores(
    lead: Mapping[str, Any],
    agent: AgentPerformanceSnapshot,
    config: ScoringConfig,
) -> Dict[ScoringComponent, float]:
    """
    Compute the 0-10 component scores for one agent, before weighting.

    Disabled components are reported as 0.
    """
    industry = _lead_industry(lead)
    perf = {str(k).strip().lower(): v for k, v in (agent.industryPerf or {}).items()}
    if industry and industry in perf:
        industry_rate = clamp01(_as_float(perf[industry], NEUTRAL_INDUSTRY_RATE))
    else:
        industry_rate = NEUTRAL_INDUSTRY_RATE

    conversion = clamp01(_as_float(agent.conversionRate, 0.0))

    avg_deal = max(0.0, _as_float(agent.avgDealSize, 0.0))
    avg_deal_norm = clamp01(avg_deal / config.avgDealReference)

    if agent.isHot:
        hot_norm = 1.0
    else:
        hot_norm = clamp01(_as_float(agent.hotDealsCount, 0.0) / max(1, config.hotStreakMinDeals))

    response_minutes = max(0.0, _as_float(agent.medianResponseMinutes, 0.0))
    response_norm = 1.0 - clamp01(response_minutes / config.responseReferenceMinutes)

    burnout = _burnout_fraction(agent.burnoutScore)
    if config.burnoutPolarity == BurnoutPolarity.PENALTY:
        burnout_norm = 1.0 - burnout
    else:
        burnout_norm = burnout

    raw = {
        ScoringComponent.INDUSTRY_PERF: industry_rate,
        ScoringComponent.CONVERSION: conversion,
        ScoringComponent.AVG_DEAL: avg_deal_norm,
        ScoringComponent.HOT_STREAK: hot_norm,
        ScoringComponent.RESPONSE_SPEED: response_norm,
        ScoringComponent.BURNOUT: burnout_norm,
        ScoringComponent.AVAILABILITY_CAP: clamp01(config.availabilityCap),
    }

    return {
        component: (value * 10.0 if config.is_enabled(component) else 0.0)
        for component, value in raw.items()
    }


def score_agent(
    lead: Mapping[str, Any],
    agent: AgentPerformanceSnapshot,
    config: ScoringConfig,
) -> AgentScore:
    components = component_scores(lead, agent, config)

    breakdown: Dict[ScoringComponent, float] = {}
    total = 0.0
    for component in ScoringComponent:
        points = (config.weight(component) / 100.0) * components[component]
        breakdown[component] = round(points, 2)
        total += points

    total = round(total, 2)

    return AgentScore(
        agentUserId=agent.agentUserId,
        agentName=agent.agentName or agent.agentUserId,
        total=total,
        breakdown=breakdown,
        components={k: round(v, 2) for k, v in components.items()},
        band=recommendation_band(total),
    )


# =============================================================================
# Public API
# =============================================================================


def score_agents(
    lead: Mapping[str, Any],
    agents: Sequence[AgentPerformanceSnapshot],
    config: ScoringConfig,
) -> List[AgentScore]:
    """
    Score and rank candidate agents for one lead.

    Args:
        lead: Lead values; only the industry is read.
        agents: Performance snapshots of the candidates.
        config: Weights, toggles and reference ceilings.

    Returns:
        Agent scores sorted by total, highest first. Ties keep input order.
    """
    scored = [score_agent(lead, agent, config) for agent in agents]
    # sorted() is stable, so equal totals keep their input order
    return sorted(scored, key=lambda s: s.total, reverse=True)


def validate_weights(config: ScoringConfig) -> Tuple[bool, float]:
    """
    Check that enabled component weights sum to roughly 100.

    Returns:
        (ok, total_weight)
    """
    total = sum(config.weight(c) for c in ScoringComponent if config.is_enabled(c))
    return abs(total - WEIGHT_SUM_TARGET) <= WEIGHT_SUM_TOLERANCE, total


def recommendation_band(total: float) -> RecommendationBand:
    scaled = total * 10.0
    for threshold, band in BAND_THRESHOLDS:
        if scaled >= threshold:
            return band
    return RecommendationBand.POOR


def scoring_config_from_settings(settings: Any, overrides: Optional[Mapping[str, Any]] = None) -> ScoringConfig:
    """
    Build a ScoringConfig whose reference ceilings come from Settings.

    Raises:
        ConfigurationInvalidError: If the stored overrides are out of range,
            e.g. a weight outside 0-100.
    """
    data: Dict[str, Any] = {
        'avgDealReference': settings.avg_deal_reference,
        'responseReferenceMinutes': settings.response_reference_minutes,
        'hotStreakMinDeals': settings.hot_streak_min_deals,
        'burnoutPolarity': settings.burnout_polarity,
    }
    if overrides:
        data.update(overrides)
    try:
        return ScoringConfig.model_validate(data)
    except ValidationError as e:
        issues = [
            {'code': 'SCORING.INVALID_CONFIG', 'message': f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"}
            for err in e.errors()
        ]
        raise ConfigurationInvalidError('Scoring configuration is invalid', issues=issues) from e


__all__ = [
    'clamp01',
    'component_scores',
    'score_agent',
    'score_agents',
    'validate_weights',
    'recommendation_band',
    'scoring_config_from_settings',
]
