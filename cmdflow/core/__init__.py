"""
Core package for the workflow graph engine.
Lightweight package init to avoid import cycles.

Consumers should import submodules directly, e.g.:
  from cmdflow.core.store import GraphStore
  from cmdflow.core.ports import get_port_spec
  from cmdflow.core.session import StepSession
"""

__all__: list[str] = []
