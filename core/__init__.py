"""
Engine core: shared types, the event bus, and the per-frame orchestrator.
"""
