"""
Authentication service for the identity service.

This module provides:
- User registration and login
- JWT token issuing and verification
- Internal user lookup
- Role-based access control from token claims
"""
