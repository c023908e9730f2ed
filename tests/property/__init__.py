"""Property-based tests using Hypothesis.

These tests use generative testing to check the bookmark core's invariants:
- Replaying change events is idempotent and never duplicates ids
- Category histogram counts and percentages stay consistent
- Search and category filtering commute

To run property tests:
    pytest tests/property/ -v --hypothesis-show-statistics

Requires:
    hypothesis>=6.100.0
"""
