"""Universal category classification."""

from .classifier import CategoryClassifier, classify

__all__ = ["CategoryClassifier", "classify"]
