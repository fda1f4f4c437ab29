"""
Inference endpoint boundary.

Exports:
  - ResponseGateway: Timeout/retry/cache-aware client for the inference endpoint
"""

from chatsync.boundary.inference.response_gateway import ResponseGateway

__all__ = ["ResponseGateway"]
