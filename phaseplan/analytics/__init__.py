"""
Phase Planning Platform
Insight analytics — pure domain calculations.

Nothing in this package touches the database, Flask or the network.
The batch driver in ``phaseplan.services.insight_orchestrator`` feeds it
snapshots and persists what it returns.
"""

from phaseplan.analytics.aggregation import ProjectAggregator
from phaseplan.analytics.burn_rate import BurnRateEstimator
from phaseplan.analytics.progression import ProgressionForecaster
from phaseplan.analytics.types import (
    BurnRate,
    DataQuality,
    InsightStatus,
    PhaseInsight,
    ProgressionMetrics,
    ProjectInsight,
    Snapshot,
    SuggestedAction,
    SuggestedActionType,
    Trend,
)

__all__ = [
    "BurnRate",
    "BurnRateEstimator",
    "DataQuality",
    "InsightStatus",
    "PhaseInsight",
    "ProgressionForecaster",
    "ProgressionMetrics",
    "ProjectAggregator",
    "ProjectInsight",
    "Snapshot",
    "SuggestedAction",
    "SuggestedActionType",
    "Trend",
]
