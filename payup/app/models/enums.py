"""
Membership roles enumeration.
"""

import enum


class MemberRole(str, enum.Enum):
    """
    Role of a user inside one team.
    
    Roles:
        ADMIN: Can add/remove members, edit any expense and run maintenance recalculation
        MEMBER: Regular participant (default role)
    """
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
