from .analyzer import UnitAnalyzer, fallback_analysis
from .providers import AnalysisProvider, LLMAnalysisProvider
from .retry import AttemptRecord, RetryExhausted, RetryPolicy, is_retryable, retry_with_backoff

__all__ = [
    "UnitAnalyzer",
    "fallback_analysis",
    "AnalysisProvider",
    "LLMAnalysisProvider",
    "AttemptRecord",
    "RetryExhausted",
    "RetryPolicy",
    "is_retryable",
    "retry_with_backoff",
]
