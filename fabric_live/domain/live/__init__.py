"""
Live streaming domain logic.

Includes:
- stream: Stream session state derivation, lifecycle orchestration and insertions.
"""
