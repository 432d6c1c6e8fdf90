"""
Client module - capture session, recordings catalog and backend API client.
"""

from screen_studio.client.api_client import APIClient, APIError
from screen_studio.client.catalog import RecordingCatalog
from screen_studio.client.session import Artifact, CaptureSession, SessionState

__all__ = [
    "APIClient",
    "APIError",
    "Artifact",
    "CaptureSession",
    "RecordingCatalog",
    "SessionState",
]
