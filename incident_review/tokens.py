"""
Opaque callback tokens for candidates.

Telegram callback data is visible to the client and limited to 64 bytes, so
candidate ids (feed GUIDs, often full URLs) are never sent. Each candidate
gets a short hex digest instead, and the map resolves it back on the way in.
"""

import hashlib
import secrets
import threading
from typing import Dict, Optional

from incident_review.constants import TOKEN_LENGTH


def normalize_candidate_id(candidate_id: str) -> str:
    """Candidate ids compare case-insensitively."""
    return candidate_id.casefold()


def _digest(value: str, length: int) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


class TokenMap:
    """Bidirectional candidate id <-> callback token association."""

    def __init__(self, token_length: int = TOKEN_LENGTH):
        self._token_length = token_length
        self._id_to_token: Dict[str, str] = {}
        self._token_to_id: Dict[str, str] = {}
        self._lock = threading.Lock()

    def mint(self, candidate_id: str) -> Optional[str]:
        """Create and record a token for the candidate.

        The token is a deterministic digest of the id. If it is already bound
        to a different candidate, one salted digest is tried instead.

        Returns:
            The token, or None if both attempts collided.
        """
        key = normalize_candidate_id(candidate_id)
        with self._lock:
            existing = self._id_to_token.get(key)
            if existing is not None:
                return existing

            token = _digest(key, self._token_length)
            if token in self._token_to_id:
                token = _digest(f"{secrets.token_hex(8)}:{key}", self._token_length)
                if token in self._token_to_id:
                    return None

            self._id_to_token[key] = token
            self._token_to_id[token] = candidate_id
            return token

    def resolve_candidate_id(self, token: str) -> Optional[str]:
        if not token:
            return None
        with self._lock:
            return self._token_to_id.get(token)

    def resolve_token(self, candidate_id: str) -> Optional[str]:
        if not candidate_id:
            return None
        with self._lock:
            return self._id_to_token.get(normalize_candidate_id(candidate_id))

    def discard(self, candidate_id: str) -> None:
        """Forget a candidate's token (registration rollback only)."""
        key = normalize_candidate_id(candidate_id)
        with self._lock:
            token = self._id_to_token.pop(key, None)
            if token is not None:
                self._token_to_id.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._id_to_token)
