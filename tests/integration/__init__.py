"""
Chopper Integration Tests

Tests covering:
- Full resolution flow: discovery -> cache -> reconcile -> merge
- Command-line front end
"""
