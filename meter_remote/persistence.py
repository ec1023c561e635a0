"""Persistence: durable login session across restarts."""

from __future__ import annotations

import json
import logging
import os

from .const import SESSION_FILE
from .models import SessionInfo

logger = logging.getLogger(__name__)


class SessionStore:
    """Stores the logged-in session as JSON on disk."""

    def __init__(self, path: str = SESSION_FILE) -> None:
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def save(self, session: SessionInfo) -> None:
        """Save the session to disk."""
        try:
            # Write to temp file first, then rename for atomicity
            tmp_path = self._path + ".tmp"
            with open(tmp_path, "w") as f:
                json.dump(session.to_dict(), f, indent=2)
            os.replace(tmp_path, self._path)
            logger.debug("Session saved to %s", self._path)
        except (OSError, TypeError) as e:
            logger.warning("Failed to save session: %s", e)

    def load(self) -> SessionInfo | None:
        """Load the session from disk.

        Returns:
            The stored session, or None if the file doesn't exist or is corrupt.
        """
        if not os.path.exists(self._path):
            logger.info("No persisted session found at %s", self._path)
            return None

        try:
            with open(self._path) as f:
                session = SessionInfo.from_dict(json.load(f))
            logger.info("Loaded persisted session for %s", session.username)
            return session
        except (json.JSONDecodeError, OSError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Failed to load session from %s: %s", self._path, e)
            return None

    def clear(self) -> None:
        """Remove the stored session."""
        try:
            os.remove(self._path)
            logger.debug("Session cleared at %s", self._path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to clear session: %s", e)
