"""
User identity model.

Users own documents. Passwords are stored as Django password hashes;
tokens are stateless so there is no session table.
"""
from django.db import models


class UserRole(models.TextChoices):
    """Role attached to a user at registration."""
    USER = 'USER', 'User'
    ADMIN = 'ADMIN', 'Administrator'


class User(models.Model):
    """
    An account that can upload and query documents.
    
    Identity (id, email) never changes once issued.
    """
    email = models.EmailField(
        max_length=255,
        unique=True,
        help_text="Login email, unique per user"
    )
    password_hash = models.CharField(
        max_length=255,
        help_text="Django password hash (never the raw password)"
    )
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.USER
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'users'
        ordering = ['id']

    def __str__(self):
        return f"{self.email} ({self.role})"
