"""Project-wide analyses for dsflint."""

from .leftovers import LeftoverAnalysisResult, LeftoverResourceDetector

__all__ = ["LeftoverAnalysisResult", "LeftoverResourceDetector"]
