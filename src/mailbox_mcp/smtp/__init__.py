from .client import OutgoingAttachment, SMTPClient, build_message

__all__ = [
    "SMTPClient",
    "OutgoingAttachment",
    "build_message",
]
