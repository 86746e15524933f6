"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip log status enumeration."""
    ACTIVE = "ACTIVE"  # Driver is sharing location
    COMPLETED = "COMPLETED"  # Sharing stopped normally
    CANCELLED = "CANCELLED"  # Abandoned without a normal stop
