"""
Analyzer module for cloned pages.

Contains the dynamic-content detector that marks forms and scripts needing
a backend.
"""

from .dynamic import DynamicContentDetector, DynamicElement, DynamicReport

__all__ = [
    "DynamicContentDetector",
    "DynamicElement",
    "DynamicReport",
]
