"""
Permission management feature module.

Permissions, roles, the Role→Permission matrix and the audit trail.
"""
