"""
Test suite for Catalogue Sync.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_export_service.py -v
"""
