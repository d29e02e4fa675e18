# AdminVault Test Suite
"""
Unit, integration and concurrency tests.

Run with: pytest
Coverage: coverage run -m pytest && coverage report
"""
