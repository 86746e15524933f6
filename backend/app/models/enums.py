"""
User roles enumeration.

Defines the role types for the bus tracking system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Manages buses, routes and drivers; sends announcements
        DRIVER: Shares the GPS position of the bus assigned to them
        PASSENGER: Views live bus locations and ETAs (default role)
    """
    ADMIN = "ADMIN"
    DRIVER = "DRIVER"
    PASSENGER = "PASSENGER"
