"""Resilient bearer-credential and chat API client."""

from .client import ChatClient
from .config import ClientConfig
from .credentials import CredentialManager
from .errors import ChatLinkError, CredentialError, RequestError, ValidationError
from .expiry import parse_expiry
from .models import ChatMessage, ChatRequest, ChatResponse, Credential
from .session import Conversation, chat

__all__ = [
    "ChatClient",
    "ChatLinkError",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ClientConfig",
    "Conversation",
    "Credential",
    "CredentialError",
    "CredentialManager",
    "RequestError",
    "ValidationError",
    "chat",
    "parse_expiry",
]
