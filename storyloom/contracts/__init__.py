"""
Contracts Module

This module defines the explicit records and value types that form the
contracts between layers. All inter-layer communication MUST use these
contracts. No layer may import implementation details from another layer.

DESIGN PRINCIPLES:
==================
1. All contract types are immutable (frozen dataclasses)
2. Failures are values (Rejection, Violation), not exceptions
3. Actions carry no default field values
4. Effects and provenance are closed unions dispatched exhaustively
5. Identifiers are sequential and stable, so replays are byte-identical
"""
