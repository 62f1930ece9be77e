"""
Evolutionary decision safety pipeline.

Design intent:
- Generate deterministic decision candidates from telemetry snapshots.
- Judge every candidate against sanity bounds and dangerous-pattern policy.
- Gate further generation on systemic sanity and quarantine misbehaving decisions.
"""
