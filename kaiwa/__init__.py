"""Kaiwa -- turns system telemetry into UI-ready chat responses.

    from kaiwa import classify, analyze, reduce, render

The four core stages are pure functions; see kaiwa.intelligence.chat for
the full request pipeline.
"""

from __future__ import annotations

__version__ = "0.1.0"

from kaiwa.intelligence.analyzer import analyze
from kaiwa.intelligence.classifier import classify
from kaiwa.intelligence.reducer import reduce
from kaiwa.intelligence.renderer import render

__all__ = ["__version__", "analyze", "classify", "reduce", "render"]
