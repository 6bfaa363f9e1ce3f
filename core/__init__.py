"""Core (UI-agnostic) incident analytics logic.

This package contains:
- text normalizers for free-text state/priority (English and Portuguese)
- category bucketing and the incident filter pipeline
- page compute functions (JSON-serializable payloads): overview, SLA, dimensions, history
- the session-scoped incident collection and view state
"""
