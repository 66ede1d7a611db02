from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Optional

from pydantic import ValidationError

from app.schemas import Credential
from datastore.files import read_json, remove_file, write_json_atomic
from settings import get_settings

logger = logging.getLogger(__name__)


class CredentialStore:
    """Holds the single live vendor credential, persisted across restarts.

    Expiry is never predicted here; the vendor's rejection of a poll is the
    only signal that the stored token is dead.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self.persistence_path = persistence_path
        self._credential: Optional[Credential] = None
        self._lock = Lock()
        if persistence_path:
            self._load_from_disk()

    def update(self, token: str, account_id: str) -> Credential:
        """Replace any stored credential; the newer token always wins."""
        token = (token or "").strip()
        account_id = (account_id or "").strip()
        if not token or not account_id:
            raise ValueError("Both token and account_id are required to store a credential.")

        credential = Credential(token=token, account_id=account_id)
        with self._lock:
            if self.persistence_path:
                write_json_atomic(self.persistence_path, credential.model_dump(mode="json"))
            self._credential = credential
        logger.info(
            "Stored credential (token length %d)",
            len(token),
            extra={"account_id": account_id},
        )
        return credential.model_copy()

    def current(self) -> Optional[Credential]:
        with self._lock:
            if self._credential is None:
                return None
            return self._credential.model_copy()

    def clear(self, expected_token: Optional[str] = None) -> bool:
        """Forget the stored credential.

        With ``expected_token`` the credential is only cleared while it still
        holds that token, so a dead token never wipes out a newer one.
        Returns whether a credential was cleared.
        """
        with self._lock:
            if self._credential is None:
                return False
            if expected_token is not None and self._credential.token != expected_token:
                return False
            self._credential = None
            if self.persistence_path:
                remove_file(self.persistence_path)
        logger.info("Cleared stored credential")
        return True

    def _load_from_disk(self) -> None:
        assert self.persistence_path is not None
        data = read_json(self.persistence_path, default=None)
        if not data:
            return
        try:
            self._credential = Credential.model_validate(data)
        except ValidationError:
            logger.warning(
                "Ignoring unreadable credential file",
                extra={"reason": str(self.persistence_path)},
            )


@lru_cache
def build_default_credential_store(path: Optional[str] = None) -> CredentialStore:
    settings = get_settings()
    store_path = settings.credential_path if path is None else path
    return CredentialStore(persistence_path=Path(store_path) if store_path else None)
