"""
Test suite for the Syndicate Manager application.

This package contains:
- unit/: business-logic, model, client and auth tests against SQLite
- integration/: REST API tests through the Flask test client
"""
