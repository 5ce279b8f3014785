"""
Integration Tests Package

End-to-end runs of action sequences through the engine, the checker and
the validation harness.

TEST AXIOMS:
=============
1. Determinism: same action sequence = identical state hash and report
2. One-way authority: only the engine writes the store
3. Explicit failure: every rejection and violation is reported as data
"""
