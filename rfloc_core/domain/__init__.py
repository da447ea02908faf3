"""
Domain Module: Collection cycle orchestration.

- CycleProcessor: per-batch coverage learning, per-cycle positioning and trust decay
- ProcessingWorker: single-consumer queue in front of the processor
"""

from .processor import CycleProcessor, ProcessorConfig
from .worker import ProcessingWorker

__all__ = [
    'CycleProcessor',
    'ProcessorConfig',
    'ProcessingWorker',
]
