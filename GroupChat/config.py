"""
Configuration module for GroupChat application.
Stores all application settings and sensitive information.
"""

import os
from typing import Dict, Any


class Config:
    """Application configuration class."""

    # Admin surface: a single shared secret sent in the 'admin-password' header.
    # Empty means every admin request is rejected.
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "")

    # Server Configuration
    DEFAULT_HOST = os.environ.get("GROUPCHAT_HOST", "localhost")
    DEFAULT_SERVER_PORT = int(os.environ.get("PORT", "8765"))
    DEFAULT_API_PORT = DEFAULT_SERVER_PORT + 1

    # SQLite database (groups, message history, session mirror)
    SQLITE_DB_FILE = os.environ.get("GROUPCHAT_DB", "groupchat.db")

    # Chat limits
    HISTORY_LIMIT = 50
    MAX_MESSAGE_LENGTH = 500
    MAX_USERNAME_LENGTH = 50
    MIN_GROUP_PASSWORD_LENGTH = 4

    # Seconds one outbound frame may take before the receiving connection is dropped
    SEND_TIMEOUT = float(os.environ.get("GROUPCHAT_SEND_TIMEOUT", "5"))

    # Password hashing
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "10"))

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        """Get all non-secret configuration values as a dictionary."""
        return {
            "DEFAULT_HOST": cls.DEFAULT_HOST,
            "DEFAULT_SERVER_PORT": cls.DEFAULT_SERVER_PORT,
            "DEFAULT_API_PORT": cls.DEFAULT_API_PORT,
            "SQLITE_DB_FILE": cls.SQLITE_DB_FILE,
            "HISTORY_LIMIT": cls.HISTORY_LIMIT,
            "MAX_MESSAGE_LENGTH": cls.MAX_MESSAGE_LENGTH,
            "MAX_USERNAME_LENGTH": cls.MAX_USERNAME_LENGTH,
            "MIN_GROUP_PASSWORD_LENGTH": cls.MIN_GROUP_PASSWORD_LENGTH,
            "SEND_TIMEOUT": cls.SEND_TIMEOUT,
            "BCRYPT_ROUNDS": cls.BCRYPT_ROUNDS,
        }


# Create config instance
config = Config()
