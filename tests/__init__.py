"""circlecal Test Suite

Test organization:
- unit/: Unit tests for individual modules
  - availability/: Interval algebra and the find-time orchestrator
  - policies/: Friendship checks, calendar access, redaction
  - store/: SQLite reference store

Running tests:
    # All tests
    pytest

    # Specific area
    pytest tests/unit/policies/
"""
