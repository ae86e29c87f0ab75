"""
Controller package.

This package owns the detection lifecycle: the registry of tracked tables,
the rescan scheduler and the batch view.
"""

from controller.registry import DetectionRegistry, RegistryEvent, ADDED, UPDATED, REMOVED
from controller.scheduler import RescanScheduler, is_relevant_mutation
from controller.batch import BatchGrouper

__all__ = [
    'DetectionRegistry',
    'RegistryEvent',
    'ADDED',
    'UPDATED',
    'REMOVED',
    'RescanScheduler',
    'is_relevant_mutation',
    'BatchGrouper',
]
