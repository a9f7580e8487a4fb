"""
Access matrix: batch editors for role, user and route authorization policy.
"""
