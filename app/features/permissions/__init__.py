"""
Permission feature module.

Role-based access control for teams: a static role -> permission table
and the guard that combines it with team memberships.
"""
