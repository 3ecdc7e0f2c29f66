"""
LiveCoord Reload Package.

Turns batches of file changes into reload decisions for open pages.
Requires Python 3.11+.
"""

from reload.classifier import ReloadClassifier, ReloadDecision
from reload.coordinator import ReloadCoordinator

__all__ = ["ReloadClassifier", "ReloadDecision", "ReloadCoordinator"]
