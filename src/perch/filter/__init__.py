"""Filtering and sanitizing of input values."""

from perch.filter.filter import Filter, Sanitizer
from perch.filter.sanitizers import BUILTIN_SANITIZERS

__all__ = ["BUILTIN_SANITIZERS", "Filter", "Sanitizer"]
