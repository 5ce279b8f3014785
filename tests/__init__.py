"""
Storyloom Test Suite

TEST AXIOMS:
=============
1. Determinism: same action sequence = identical store hash and violations
2. Locality: what happens in one timeline never leaks into another
3. Explicit failure: rejections and violations are values, never silent
"""
