"""Correction Module."""

from docrepair.correction.engine import CorrectionEngine

__all__ = ["CorrectionEngine"]
