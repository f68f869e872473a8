"""Persistent session store scoped per profile.

Stores the current :class:`~querykit.models.Credentials` in
``~/.local/share/querykit/sessions/<profile>.json`` (XDG) or the
platform-equivalent directory, so that a user stays logged in across runs.
Files are written atomically via :func:`~querykit.config.atomic_write` with
``0o600`` permissions so that tokens are never world-readable, even
momentarily.

See Also:
    :class:`~querykit.auth.session.CredentialSession` -- writes through to
    this store on every change.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from querykit.config import atomic_write, get_data_dir
from querykit.models import Credentials


def _sessions_dir() -> Path:
    """Return the sessions directory, creating it if needed."""
    path = get_data_dir() / "sessions"
    path.mkdir(parents=True, exist_ok=True)
    return path


class SessionStore:
    """Read/write the persisted session for a single profile.

    Args:
        profile_name: The profile identifier used to derive the file name.

    Example::

        store = SessionStore("default")
        store.save(Credentials(access_token="a", refresh_token="r"))
        assert store.load().access_token == "a"
    """

    def __init__(self, profile_name: str = "default") -> None:
        self._profile_name = profile_name
        self._path = _sessions_dir() / f"{profile_name}.json"

    @property
    def path(self) -> Path:
        """The filesystem path to this profile's session file."""
        return self._path

    def save(self, credentials: Credentials) -> None:
        """Persist *credentials* atomically with ``0o600`` permissions.

        Raises:
            OSError: If the file cannot be written.
        """
        data = credentials.model_dump(mode="json")
        atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)

    def load(self) -> Optional[Credentials]:
        """Load the stored credentials.

        Returns:
            The deserialised :class:`~querykit.models.Credentials`, or
            ``None`` if the file does not exist or cannot be parsed.
        """
        if not self._path.is_file():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return Credentials.model_validate(data)
        except (json.JSONDecodeError, ValueError, OSError):
            return None

    def clear(self) -> None:
        """Delete the stored session file if it exists."""
        if self._path.is_file():
            self._path.unlink()
