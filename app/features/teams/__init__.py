"""
Team feature module.

Teams, role-tagged memberships and email invitations.
"""
