from .applier import RuleApplier
from .learner import DetectionResult, FormatHypothesis, PatternLearner, ValidationReport

__all__ = [
    "DetectionResult",
    "FormatHypothesis",
    "PatternLearner",
    "RuleApplier",
    "ValidationReport",
]
