"""
Plan Engine - Relational Query-Plan Engine

Immutable relational pipelines (extend, select rows, order, windowed ranking,
materialize) that compile to SQL for a remote backend and run unchanged
against in-memory tables.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
