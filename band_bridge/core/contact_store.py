"""
Caregiver contact persistence.

A tiny JSON key/value file standing in for browser localStorage. The contact
lives under a single key so the file can hold other settings later.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from band_bridge.schemas.caregiver import CaregiverContact

logger = logging.getLogger(__name__)

CONTACT_KEY = "caregiverInfo"


class ContactStore:
    """Reads and writes the caregiver contact. Always reads from disk."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def _load_all(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Contact store %s unreadable, treating as empty: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self) -> CaregiverContact:
        """Latest saved contact; empty fields when nothing usable is stored."""
        saved = self._load_all().get(CONTACT_KEY)
        if not isinstance(saved, dict):
            return CaregiverContact()
        try:
            return CaregiverContact.model_validate(saved)
        except ValidationError as e:
            logger.warning("Stored caregiver contact is invalid, ignoring: %s", e)
            return CaregiverContact()

    def put(self, contact: CaregiverContact) -> None:
        data = self._load_all()
        data[CONTACT_KEY] = contact.model_dump()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # write-then-rename
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.info("Saved caregiver contact to %s", self.path)
