"""
Database Models

This module exports all SQLAlchemy models for the application.
"""

from app.models.user import User, UserRole, UserStatus
from app.models.client import Client
from app.models.audit import AuditLog, AuditAction, EntityType

__all__ = [
    # User models
    "User",
    "UserRole",
    "UserStatus",
    # Tracked entities
    "Client",
    # Audit models
    "AuditLog",
    "AuditAction",
    "EntityType",
]
