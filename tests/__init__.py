"""
Tests package - Test suite for the internal load balancer webhook.

Contains:
- unit/: Unit tests for individual components; the Kubernetes API is mocked
"""
