"""Application layer for the plan engine.

The application layer wires the pure domain services to configuration,
backends and observability.

Exports:
    - PlanEngine: Main entry point for compiling and running pipelines
"""

from plan_engine.application.plan_engine import PlanEngine

__all__ = [
    "PlanEngine",
]
