"""
Core Layer - Aggregation, scoring and the service loop.

This module provides:
    - SwapAggregator: token info, good-trader activity and summaries over
      the shared swap history store
    - GoodTraderList: allow-list of trader addresses
    - Scoring: build_ranges, scale_to_0_10, dynamic_score, enhanced_score
    - SignalService: hourly refresh loop and token ranking

Data Flow:
    1. SwapEventWatcher appends live swaps to the store
    2. SwapAggregator folds a store snapshot into per-token statistics
    3. build_ranges computes universe-wide bounds
    4. score() maps each token into a 0-100 composite
"""

from .aggregator import (
    GoodTraderList,
    SwapAggregator,
    fold_summaries,
    good_trader_activity,
    token_info,
)
from .scoring import (
    DEFAULT_WEIGHTS,
    EnhancedScoreDetails,
    RiskLevel,
    ScoreDetails,
    ScoringRange,
    ScoringWeights,
    build_ranges,
    dynamic_score,
    enhanced_score,
    normalize_weights,
    risk_for_size,
    scale_to_0_10,
    score,
)
from .service import RankedToken, ServiceState, SignalService

__all__ = [
    "GoodTraderList",
    "SwapAggregator",
    "fold_summaries",
    "good_trader_activity",
    "token_info",
    "DEFAULT_WEIGHTS",
    "EnhancedScoreDetails",
    "RiskLevel",
    "ScoreDetails",
    "ScoringRange",
    "ScoringWeights",
    "build_ranges",
    "dynamic_score",
    "enhanced_score",
    "normalize_weights",
    "risk_for_size",
    "scale_to_0_10",
    "score",
    "RankedToken",
    "ServiceState",
    "SignalService",
]
