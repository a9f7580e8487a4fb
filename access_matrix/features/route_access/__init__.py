"""
Route access feature module.

Discovers the API's own routes and stores which permissions and roles
protect each of them.
"""
