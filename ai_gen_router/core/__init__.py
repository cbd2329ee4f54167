"""
Core modules for AI Gen Router.

This package contains the core functionality for complexity classification,
model selection, fallback orchestration, cost estimation, usage tracking
and the feedback loop.
"""
