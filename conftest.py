"""Pytest configuration: collect doctests from package docstrings."""

from sybil import Sybil
from sybil.parsers.rest import DocTestParser

# Sybil configuration for docstring doctest integration
pytest_collect_file = Sybil(
    parsers=[DocTestParser()],
    patterns=["*.py"],
    path="src",
).pytest()
