"""Kaiwa core pipeline -- classifier, context analyzer, data reducer, renderer."""

from kaiwa.intelligence.analyzer import analyze
from kaiwa.intelligence.classifier import classify
from kaiwa.intelligence.reducer import reduce
from kaiwa.intelligence.renderer import render

__all__ = ["analyze", "classify", "reduce", "render"]
