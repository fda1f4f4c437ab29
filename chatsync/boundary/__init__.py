"""
Boundary layer for external system integrations.

Handles all interactions with external systems (durable store, real-time
feed, inference endpoint).
"""
