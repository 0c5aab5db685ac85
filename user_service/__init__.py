"""
User service.

User accounts, credential checks and stateless session tokens for the
patient/doctor platform.
"""
