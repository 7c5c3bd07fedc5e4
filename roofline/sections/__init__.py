"""Roof section labels and totals."""

from .aggregator import RoofSectionAggregator, SectionSummary, ordinal_label

__all__ = ["RoofSectionAggregator", "SectionSummary", "ordinal_label"]
