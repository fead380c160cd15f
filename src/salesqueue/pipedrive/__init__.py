"""Pipedrive API access.

- client: live async client (versioned API with legacy fallback)
- dummy: in-memory stand-in for tests and demos
- models: entity snapshots and digest output models
- refs: relationship-field normalization
"""
