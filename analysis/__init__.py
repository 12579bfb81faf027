"""
Analysis package: expose the story classifier and its report models.
"""

from .classifier import classify
from .models import AnalysisReport, AnalyzedStory, Summary

__all__ = ["classify", "AnalysisReport", "AnalyzedStory", "Summary"]
