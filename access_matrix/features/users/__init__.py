"""
User management feature module.

Users, departments, the User→Role matrix and direct user permissions.
"""
