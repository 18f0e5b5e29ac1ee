"""
Decision Gates Module
"""
from .gates import (
    ConsistencyOfEffectGate,
    DecisionGate,
    DecisionGateEvaluator,
    DecisionReport,
    EffectDirection,
    GateOutcome,
    GateResult,
    OrganicDemandGate,
    ScaleThresholdGate,
    TrendStabilityGate,
    create_default_gates,
    longest_negative_run,
)

__all__ = [
    "ConsistencyOfEffectGate",
    "DecisionGate",
    "DecisionGateEvaluator",
    "DecisionReport",
    "EffectDirection",
    "GateOutcome",
    "GateResult",
    "OrganicDemandGate",
    "ScaleThresholdGate",
    "TrendStabilityGate",
    "create_default_gates",
    "longest_negative_run",
]
