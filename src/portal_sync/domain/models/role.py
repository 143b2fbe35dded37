"""Participant role domain model."""

from enum import StrEnum


class Role(StrEnum):
    """Role an owner plays in the portal.

    Operators are the organization's admins; members are students.
    """

    OPERATOR = "operator"
    MEMBER = "member"
