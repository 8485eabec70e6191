"""Evaluation framework: schemes, metrics and the evaluator."""

from .evaluator import DEFAULT_CUTOFFS, EvaluationResult, Evaluator, accuracy_table, compare, evaluate
from .metrics import accuracy, topn_confusion
from .scheme import EvaluationScheme, Fold, TestContext, split

__all__ = [
    "DEFAULT_CUTOFFS",
    "EvaluationResult",
    "EvaluationScheme",
    "Evaluator",
    "Fold",
    "TestContext",
    "accuracy",
    "accuracy_table",
    "compare",
    "evaluate",
    "split",
    "topn_confusion",
]
