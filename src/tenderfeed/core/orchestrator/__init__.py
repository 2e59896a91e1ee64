"""Orchestrator - run coordination and ledger bookkeeping."""

from .runner import BatchResult, Orchestrator, RunResult, SourceRunner, build_http_backend

__all__ = [
    "SourceRunner",
    "Orchestrator",
    "RunResult",
    "BatchResult",
    "build_http_backend",
]
