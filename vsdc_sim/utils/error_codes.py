from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Standard simulator error codes."""

    E001 = "E001"  # Lookup: Resource not found
    E002 = "E002"  # Validation: Invalid input
    E003 = "E003"  # Capacity: Too many requests / observers
    E004 = "E004"  # Availability: Service unavailable
    E005 = "E005"  # Internal: Internal error


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.E001: "Not found",
    ErrorCode.E002: "Validation error",
    ErrorCode.E003: "Too many requests",
    ErrorCode.E004: "Service unavailable",
    ErrorCode.E005: "Internal server error",
}
