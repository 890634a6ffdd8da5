"""
Controller Libraries

Lifecycle-hook registry and the informers that feed it.
"""

from .hooks import LifecycleRegistry, Registration
from .informer import Controller, Informer, WATCHED_KINDS

__all__ = [
    'LifecycleRegistry',
    'Registration',
    'Controller',
    'Informer',
    'WATCHED_KINDS'
]
