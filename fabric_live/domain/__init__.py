"""
Domain layer containing core business logic and domain services.

Submodules:
- live: Live stream session logic (status, lifecycle, insertions).
"""
