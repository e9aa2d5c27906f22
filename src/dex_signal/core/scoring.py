"""
Token Scoring Engine.

Turns per-token statistics into a comparable 0-100 composite score.

Five metrics are scored against global ranges built over the current
token universe:
    - TVL                (higher is better)
    - Volume             (higher is better)
    - Net buys           (signed; buys - sells from the swap history)
    - Good-trader diff   (signed; allow-listed BUYs - SELLs in the last 30 min)
    - Heat ratio         (lower is better; volume / TVL)

Each metric is mapped to a 0-10 sub-score, weighted by normalized weights
and summed into the composite. The enhanced layer adds market-depth derived
metrics (momentum, liquidity health, risk adjustment) when pair data is
available, and neutral defaults otherwise.

Usage:
    ranges = build_ranges(tokens, infos, activity)
    details = score(token, infos, activity, ranges, dex_data=depth)
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from dex_signal.ingestion.market_depth import MarketDepth
from dex_signal.ingestion.models import (
    GoodTraderSwap,
    TokenInfo,
    TokenSize,
    TokenSnapshot,
    TradeAction,
)

logger = logging.getLogger(__name__)

GOOD_TRADER_SCORE_WINDOW_SECONDS = 1800
MOMENTUM_WINDOWS_MINUTES = (5, 15, 30, 60)
LIQUIDITY_DEPTH_CEILING_USD = 1_000_000.0


class RiskLevel(str, Enum):
    LOW = "LOW"
    MID = "MID"
    HIGH = "HIGH"


def risk_for_size(size: TokenSize) -> RiskLevel:
    """Large tokens are low risk, small tokens high risk."""
    if size == TokenSize.LARGE:
        return RiskLevel.LOW
    if size == TokenSize.SMALL:
        return RiskLevel.HIGH
    return RiskLevel.MID


# ═══════════════════════════════════════════════════════════════════════════
# WEIGHTS AND RANGES
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ScoringWeights:
    """Per-metric weights. Normalized sets sum to 1."""
    tvl: float = 0.15
    volume: float = 0.15
    net_buys: float = 0.20
    good_trader: float = 0.30
    heat: float = 0.20

    @property
    def total(self) -> float:
        return self.tvl + self.volume + self.net_buys + self.good_trader + self.heat

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


DEFAULT_WEIGHTS = ScoringWeights()
WEIGHT_NAMES = tuple(f.name for f in fields(ScoringWeights))


def normalize_weights(overrides: Optional[Mapping[str, float]] = None) -> ScoringWeights:
    """
    Merge partial overrides over the defaults and rescale to sum to 1.

    Raises:
        ValueError: On an unknown metric name, a negative weight, or a zero sum
    """
    merged = DEFAULT_WEIGHTS.to_dict()
    for name, value in (overrides or {}).items():
        if name not in merged:
            raise ValueError(f"Unknown scoring weight: {name}")
        if value < 0:
            raise ValueError(f"Scoring weight {name} must be non-negative, got {value}")
        merged[name] = float(value)

    total = sum(merged.values())
    if total <= 0:
        raise ValueError("Scoring weights must not all be zero")

    return ScoringWeights(**{name: value / total for name, value in merged.items()})


@dataclass(frozen=True)
class ScoringRange:
    """Global min/max per metric across the token universe."""
    tvl_min: float = 0.0
    tvl_max: float = 0.0
    volume_min: float = 0.0
    volume_max: float = 0.0
    net_buy_min: float = 0.0
    net_buy_max: float = 0.0
    good_trader_diff_min: float = 0.0
    good_trader_diff_max: float = 0.0
    heat_min: float = 0.0
    heat_max: float = 0.0


def scale_to_0_10(value: float, min_value: float, max_value: float, invert: bool = False) -> float:
    """
    Linearly map value's position in [min_value, max_value] to [0, 10].

    A degenerate range (max == min) carries no information and scores 5.
    With invert set, lower values score higher.
    """
    if max_value == min_value:
        return 5.0

    if invert:
        ratio = (max_value - value) / (max_value - min_value)
    else:
        ratio = (value - min_value) / (max_value - min_value)

    return max(0.0, min(10.0, 10.0 * ratio))


def _net_buys_by_token(token_infos: Iterable[TokenInfo]) -> dict[str, int]:
    return {info.contract_address.lower(): info.net_buys for info in token_infos}


def _good_trader_counts(
    activity: Iterable[GoodTraderSwap],
    cutoff: datetime,
) -> dict[str, tuple[int, int]]:
    """(buys, sells) per lowercased token address for entries after cutoff."""
    counts: dict[str, tuple[int, int]] = {}
    for entry in activity:
        if entry.timestamp <= cutoff:
            continue
        address = entry.token.address.lower()
        buys, sells = counts.get(address, (0, 0))
        if entry.action == TradeAction.BUY:
            buys += 1
        elif entry.action == TradeAction.SELL:
            sells += 1
        counts[address] = (buys, sells)
    return counts


def build_ranges(
    tokens: Sequence[TokenSnapshot],
    token_infos: Iterable[TokenInfo],
    activity: Iterable[GoodTraderSwap],
    now: Optional[datetime] = None,
    window_seconds: float = GOOD_TRADER_SCORE_WINDOW_SECONDS,
) -> ScoringRange:
    """
    Compute per-metric min/max in a single pass over the universe.

    Net buys and good-trader diff are signed. TVL, volume and heat maxima
    are lower-bounded at 0. An empty universe yields an all-zero range.
    """
    if not tokens:
        return ScoringRange()

    now = now or datetime.now(timezone.utc)
    net_buys = _net_buys_by_token(token_infos)
    counts = _good_trader_counts(activity, now - timedelta(seconds=window_seconds))

    tvl_min = volume_min = heat_min = math.inf
    tvl_max = volume_max = heat_max = 0.0
    net_min = diff_min = math.inf
    net_max = diff_max = -math.inf

    for token in tokens:
        address = token.contract_address.lower()
        tvl = token.total_value_locked_usd
        volume = token.volume_usd
        heat = token.heat_ratio
        net = net_buys.get(address, 0)
        buys, sells = counts.get(address, (0, 0))
        diff = buys - sells

        tvl_min, tvl_max = min(tvl_min, tvl), max(tvl_max, tvl)
        volume_min, volume_max = min(volume_min, volume), max(volume_max, volume)
        heat_min, heat_max = min(heat_min, heat), max(heat_max, heat)
        net_min, net_max = min(net_min, net), max(net_max, net)
        diff_min, diff_max = min(diff_min, diff), max(diff_max, diff)

    logger.debug(f"Built scoring ranges over {len(tokens)} tokens")
    return ScoringRange(
        tvl_min=tvl_min,
        tvl_max=tvl_max,
        volume_min=volume_min,
        volume_max=volume_max,
        net_buy_min=net_min,
        net_buy_max=net_max,
        good_trader_diff_min=diff_min,
        good_trader_diff_max=diff_max,
        heat_min=heat_min,
        heat_max=heat_max,
    )


# ═══════════════════════════════════════════════════════════════════════════
# BASE SCORE
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class MetricScores:
    tvl: float
    volume: float
    net_buys: float
    good_trader: float
    heat: float

    @property
    def total(self) -> float:
        return self.tvl + self.volume + self.net_buys + self.good_trader + self.heat


@dataclass(frozen=True)
class ScoreMetrics:
    """Raw metric values the sub-scores were computed from."""
    tvl: float
    volume: float
    net_buys: int
    good_trader_diff: int
    heat_ratio: float
    good_trader_buys: int = 0
    good_trader_sells: int = 0


@dataclass(frozen=True)
class ScoreDetails:
    """Composite score with its breakdown."""
    contract_address: str
    final_score: int
    breakdown: MetricScores
    weighted_breakdown: MetricScores
    weights: ScoringWeights
    explanation: dict[str, str]
    metrics: ScoreMetrics

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _explain(label: str, sub_score: float, weight: float) -> str:
    return f"{label} (Score: {sub_score:.1f}/10, Weight: {weight * 100:.0f}%)"


def dynamic_score(
    token: TokenSnapshot,
    token_infos: Iterable[TokenInfo],
    activity: Iterable[GoodTraderSwap],
    ranges: ScoringRange,
    weights: Optional[Mapping[str, float]] = None,
    now: Optional[datetime] = None,
    window_seconds: float = GOOD_TRADER_SCORE_WINDOW_SECONDS,
) -> ScoreDetails:
    """Score one token against the universe ranges."""
    now = now or datetime.now(timezone.utc)
    w = normalize_weights(weights)
    address = token.contract_address.lower()

    tvl = token.total_value_locked_usd
    volume = token.volume_usd
    heat = token.heat_ratio
    net_buys = _net_buys_by_token(token_infos).get(address, 0)

    cutoff = now - timedelta(seconds=window_seconds)
    buys, sells = _good_trader_counts(activity, cutoff).get(address, (0, 0))
    diff = buys - sells

    sub = MetricScores(
        tvl=scale_to_0_10(tvl, ranges.tvl_min, ranges.tvl_max),
        volume=scale_to_0_10(volume, ranges.volume_min, ranges.volume_max),
        net_buys=scale_to_0_10(net_buys, ranges.net_buy_min, ranges.net_buy_max),
        good_trader=scale_to_0_10(
            diff, ranges.good_trader_diff_min, ranges.good_trader_diff_max
        ),
        heat=scale_to_0_10(heat, ranges.heat_min, ranges.heat_max, invert=True),
    )
    weighted = MetricScores(
        tvl=sub.tvl * w.tvl,
        volume=sub.volume * w.volume,
        net_buys=sub.net_buys * w.net_buys,
        good_trader=sub.good_trader * w.good_trader,
        heat=sub.heat * w.heat,
    )

    explanation = {
        "tvl": _explain(f"TVL: ${tvl:.2f}", sub.tvl, w.tvl),
        "volume": _explain(f"24h Volume: ${volume:.2f}", sub.volume, w.volume),
        "net_buys": _explain(f"Net Buys: {net_buys}", sub.net_buys, w.net_buys),
        "good_trader": _explain(
            f"Smart Money: {buys} buys, {sells} sells", sub.good_trader, w.good_trader
        ),
        "heat": _explain(f"Heat Ratio: {heat:.3f}", sub.heat, w.heat),
    }

    return ScoreDetails(
        contract_address=token.contract_address,
        final_score=_round_half_up(weighted.total * 10),
        breakdown=sub,
        weighted_breakdown=MetricScores(
            tvl=weighted.tvl * 10,
            volume=weighted.volume * 10,
            net_buys=weighted.net_buys * 10,
            good_trader=weighted.good_trader * 10,
            heat=weighted.heat * 10,
        ),
        weights=w,
        explanation=explanation,
        metrics=ScoreMetrics(
            tvl=tvl,
            volume=volume,
            net_buys=net_buys,
            good_trader_diff=diff,
            heat_ratio=heat,
            good_trader_buys=buys,
            good_trader_sells=sells,
        ),
    )


# ═══════════════════════════════════════════════════════════════════════════
# ENHANCED LAYER
# Market-depth derived metrics. Every field has a neutral default so a
# token without pair data still scores.
# ═══════════════════════════════════════════════════════════════════════════


def _zero_windows() -> dict[str, float]:
    return {"m5": 0.0, "h1": 0.0, "h6": 0.0, "h24": 0.0}


@dataclass(frozen=True)
class TimeWeightedMetrics:
    price_change_5m: float = 0.0
    volume_5m: float = 0.0
    price_change_1h: float = 0.0
    volume_1h: float = 0.0
    price_change_24h: float = 0.0
    volume_24h: float = 0.0

    @property
    def volatility(self) -> float:
        return (
            abs(self.price_change_5m)
            + abs(self.price_change_1h) / 2
            + abs(self.price_change_24h) / 4
        )


@dataclass(frozen=True)
class LiquidityHealth:
    concentration: float = 0.5
    stability: float = 0.5
    depth: float = 0.5
    buy_pressure: dict[str, float] = field(default_factory=_zero_windows)
    volume_profile: dict[str, float] = field(default_factory=_zero_windows)


@dataclass(frozen=True)
class MarketContext:
    sector_performance: float = 0.0
    overall_volume_trend: float = 0.0
    major_token_correlation: float = 0.5


@dataclass(frozen=True)
class TransactionMetrics:
    buy_pressure: float = 0.0
    volume_acceleration: float = 0.0
    short_term_momentum: float = 0.0
    social_signals: float = 0.0


@dataclass(frozen=True)
class SocialMetrics:
    website_count: int = 0
    social_count: int = 0
    has_image: bool = False


@dataclass(frozen=True)
class EnhancedScoreDetails:
    """Base score plus market-depth enrichment."""
    base: ScoreDetails
    time_weighted: TimeWeightedMetrics
    smart_money_momentum: float
    liquidity_health: LiquidityHealth
    risk_adjusted: float
    market_context: MarketContext
    transaction_metrics: TransactionMetrics
    social_metrics: SocialMetrics

    @property
    def contract_address(self) -> str:
        return self.base.contract_address

    @property
    def final_score(self) -> int:
        return self.base.final_score

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def smart_money_momentum(
    token_address: str,
    activity: Iterable[GoodTraderSwap],
    now: Optional[datetime] = None,
) -> float:
    """
    Decayed weighted average of the good-trader buy ratio for one token.

    Windows of 5/15/30/60 minutes, weight halving each step outward.
    Result lies in [0, 1].
    """
    now = now or datetime.now(timezone.utc)
    address = token_address.lower()
    entries = [a for a in activity if a.token.address.lower() == address]

    weighted = 0.0
    weight_sum = 0.0
    for index, minutes in enumerate(MOMENTUM_WINDOWS_MINUTES):
        weight = 1 / 2 ** index
        cutoff = now - timedelta(minutes=minutes)
        recent = [a for a in entries if a.timestamp > cutoff]
        if recent:
            buys = sum(1 for a in recent if a.action == TradeAction.BUY)
            weighted += weight * buys / len(recent)
        weight_sum += weight

    return weighted / weight_sum


def time_weighted_metrics(dex_data: Optional[MarketDepth]) -> TimeWeightedMetrics:
    pair = dex_data.primary if dex_data else None
    if pair is None:
        return TimeWeightedMetrics()
    return TimeWeightedMetrics(
        price_change_5m=pair.price_change_for("m5"),
        volume_5m=pair.volume_for("m5"),
        price_change_1h=pair.price_change_for("h1"),
        volume_1h=pair.volume_for("h1"),
        price_change_24h=pair.price_change_for("h24"),
        volume_24h=pair.volume_for("h24"),
    )


def liquidity_health(dex_data: Optional[MarketDepth]) -> LiquidityHealth:
    pair = dex_data.primary if dex_data else None
    if pair is None:
        return LiquidityHealth()

    hourly_average = pair.volume_for("h24") / 24
    if hourly_average > 0:
        concentration = min(pair.volume_for("h1") / hourly_average, 1.0)
    else:
        concentration = 0.5

    return LiquidityHealth(
        concentration=concentration,
        stability=1 - abs(pair.price_change_for("h24")) / 100,
        depth=min(pair.liquidity_usd / LIQUIDITY_DEPTH_CEILING_USD, 1.0),
        buy_pressure={w: pair.txns_for(w).buy_ratio for w in ("m5", "h1", "h6", "h24")},
        volume_profile={w: pair.volume_for(w) for w in ("m5", "h1", "h6", "h24")},
    )


def social_metrics(dex_data: Optional[MarketDepth]) -> SocialMetrics:
    pair = dex_data.primary if dex_data else None
    if pair is None or pair.info is None:
        return SocialMetrics()
    return SocialMetrics(
        website_count=len(pair.info.websites),
        social_count=len(pair.info.socials),
        has_image=bool(pair.info.image_url),
    )


def transaction_metrics(dex_data: Optional[MarketDepth]) -> TransactionMetrics:
    pair = dex_data.primary if dex_data else None
    if pair is None:
        return TransactionMetrics()

    buy_pressure = sum(
        pair.txns_for(window).buy_ratio * weight
        for window, weight in (("m5", 0.4), ("h1", 0.3), ("h6", 0.2), ("h24", 0.1))
    )

    # m5 volume extrapolated to an hour, relative to the last hour
    h1_volume = pair.volume_for("h1")
    if h1_volume > 0:
        volume_acceleration = pair.volume_for("m5") * 12 / h1_volume - 1
    else:
        volume_acceleration = 0.0

    short_term_momentum = (
        pair.price_change_for("m5") * 0.4
        + pair.price_change_for("h1") * 0.3
        + pair.price_change_for("h6") * 0.2
        + pair.price_change_for("h24") * 0.1
    )

    social = social_metrics(dex_data)
    social_signals = (
        social.website_count * 0.3
        + social.social_count * 0.2
        + (0.5 if social.has_image else 0.0)
    )

    return TransactionMetrics(
        buy_pressure=buy_pressure,
        volume_acceleration=volume_acceleration,
        short_term_momentum=short_term_momentum,
        social_signals=social_signals,
    )


def risk_adjusted_score(base_score: float, volatility: float, liquidity_depth: float) -> float:
    """Dampen by log volatility, reward log liquidity depth (bonus capped at 0.5)."""
    volatility_penalty = math.log(1 + volatility) * 0.1
    liquidity_bonus = min(math.log(1 + liquidity_depth) * 0.05, 0.5)
    return base_score * (1 - volatility_penalty + liquidity_bonus)


def enhanced_score(
    token: TokenSnapshot,
    token_infos: Iterable[TokenInfo],
    activity: Iterable[GoodTraderSwap],
    ranges: ScoringRange,
    dex_data: Optional[MarketDepth] = None,
    weights: Optional[Mapping[str, float]] = None,
    now: Optional[datetime] = None,
    window_seconds: float = GOOD_TRADER_SCORE_WINDOW_SECONDS,
) -> EnhancedScoreDetails:
    """Base score enriched with market-depth metrics (neutral when absent)."""
    now = now or datetime.now(timezone.utc)
    activity = list(activity)

    base = dynamic_score(
        token, token_infos, activity, ranges,
        weights=weights, now=now, window_seconds=window_seconds,
    )

    timed = time_weighted_metrics(dex_data)
    health = liquidity_health(dex_data)
    txn = transaction_metrics(dex_data)
    social = social_metrics(dex_data)

    adjusted = risk_adjusted_score(base.final_score, timed.volatility, health.depth)
    adjusted *= (
        (1 + txn.buy_pressure * 0.2)
        * (1 + max(txn.volume_acceleration, 0.0) * 0.1)
        * (1 + social.website_count * 0.05)
    )

    return EnhancedScoreDetails(
        base=base,
        time_weighted=timed,
        smart_money_momentum=smart_money_momentum(token.contract_address, activity, now=now),
        liquidity_health=health,
        risk_adjusted=adjusted,
        market_context=MarketContext(
            sector_performance=1.0 if timed.price_change_24h > 0 else 0.0,
            overall_volume_trend=1.0 if timed.volume_24h > 0 else 0.0,
        ),
        transaction_metrics=txn,
        social_metrics=social,
    )


def score(
    token: TokenSnapshot,
    token_infos: Iterable[TokenInfo],
    activity: Iterable[GoodTraderSwap],
    ranges: ScoringRange,
    dex_data: Optional[MarketDepth] = None,
    weights: Optional[Mapping[str, float]] = None,
    now: Optional[datetime] = None,
) -> Union[ScoreDetails, EnhancedScoreDetails]:
    """Enhanced details when market-depth data is supplied, base otherwise."""
    if dex_data is None:
        return dynamic_score(token, token_infos, activity, ranges, weights=weights, now=now)
    return enhanced_score(
        token, token_infos, activity, ranges, dex_data=dex_data, weights=weights, now=now
    )
