"""
HTTP boundary for the decision safety pipeline.

Design intent:
- Expose thin, typed endpoints for generation, validation, sanity and quarantine flows.
- Keep request validation explicit and failure modes predictable.
- Orchestrate modules without embedding domain logic in routers.
"""
