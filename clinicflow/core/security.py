import secrets

from clinicflow.core.config import settings


def generate_public_token() -> str:
    """Opaque, URL-safe capability key for public status links"""
    return secrets.token_urlsafe(settings.PUBLIC_TOKEN_BYTES)
