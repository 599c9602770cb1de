"""Methylation analysis tools module.

Provides the tumor vs. normal classifiers, gene selection, clustering and
survival analysis, and the class running them as one analysis.
"""

from .models import TrainedClassifier
from .pipeline import MethylSurvivalAnalysis

__all__ = ["MethylSurvivalAnalysis", "TrainedClassifier"]
