"""Credential persistence."""

from voxrelay.services.credentials.store import CredentialStore

__all__ = ["CredentialStore"]
