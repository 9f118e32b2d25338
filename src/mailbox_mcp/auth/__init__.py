from .base import AuthContext, SMTPAuth, IMAPAuth
from .password import PasswordAuth

__all__ = ["SMTPAuth", "IMAPAuth", "AuthContext", "PasswordAuth"]
