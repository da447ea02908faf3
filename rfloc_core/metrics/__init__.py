"""
Metrics Module: Diagnostics, counters, histograms.

- Counters: batches_in, observations_in, position_fixes, emitter lifecycle
- Histograms: cluster sizes, fused accuracy, Kalman innovation
- Drop reason codes so that no sample is discarded silently

Usage:
    from rfloc_core.metrics import get_metrics

    metrics = get_metrics()
    metrics.increment('observations_in')
    metrics.increment_drop('null_island')
    metrics.record_histogram('fused_accuracy_m', 23.5)
"""

from .counters import MetricsCollector

# Global singleton for easy access
_global_metrics = None


def get_metrics() -> MetricsCollector:
    """
    Get the global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics


def reset_metrics():
    """Reset global metrics (for testing)."""
    global _global_metrics
    _global_metrics = MetricsCollector()


__all__ = ['MetricsCollector', 'get_metrics', 'reset_metrics']
