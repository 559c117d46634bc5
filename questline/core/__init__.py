"""
Core infrastructure layer for Questline.

Subsystems
----------
- config: static environment config (Config) and YAML tuning (ConfigManager)
- logging: structured, queue-backed logging with LogContext
- event: async EventBus with tiered listener priorities
- database: async SQLAlchemy engine, sessions and declarative base

No quest semantics live here; this package only provides plumbing for
``questline.modules``.
"""
