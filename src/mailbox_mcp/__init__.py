# src/mailbox_mcp/__init__.py
from .config import IMAPConfig, SMTPConfig, Settings
from .email_manager import EmailManager

__all__ = ["EmailManager", "IMAPConfig", "SMTPConfig", "Settings"]
