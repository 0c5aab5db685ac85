"""
Authentication core for the user service.

This package provides:
- Password hashing
- Access and refresh token signing
- Register, login, refresh and profile flows
- Role-based access control
"""
