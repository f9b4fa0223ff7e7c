"""
Core modules for the LLM orchestrator.

This package contains task types, message and response models, errors,
pricing, the response cache, the routing table and the rate limiter.
"""
