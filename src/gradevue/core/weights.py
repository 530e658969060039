from typing import Dict

from gradevue.core.policy import MeasureType, PolicyVariant


WEIGHT_OVERRIDES: Dict[PolicyVariant, Dict[str, float]] = {
    PolicyVariant.MCPS: {
        "All Tasks / Assessments": 0.9,
        "Practice / Preparation": 0.1,
    },
}


def compute_weight(measure_type: MeasureType, variant: PolicyVariant = PolicyVariant.GENERIC) -> float:
    overrides = WEIGHT_OVERRIDES.get(variant, {})
    if measure_type.name in overrides:
        return overrides[measure_type.name]
    return max(0.0, measure_type.weight / 100)
