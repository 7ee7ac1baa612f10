from __future__ import annotations
import hashlib
import logging
import os
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .keys import ApiKeyCredential, ProviderId, validate_key_format
from .provider_clients import ProviderAttempt
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass
class ApiKeyEntry:
	id: str
	provider: ProviderId
	ciphertext: bytes = field(repr=False)
	is_valid: bool = True
	last_used: datetime = field(default_factory=datetime.utcnow)
	failure_count: int = 0
	last_error: Optional[str] = None


@dataclass(frozen=True)
class KeySessionResult:
	success: bool
	valid_keys: int
	errors: List[str]


class KeyDecryptionError(Exception):
	pass


class ApiKeyManager:
	"""Session-scoped cache of caller API keys, encrypted at rest in process memory.

	Each session's entries are sealed with AES-GCM under a key derived from the session id and
	the server secret, so a dump of the map alone does not reveal the keys. Entries are dropped
	after `max_failures` consecutive failures, and whole sessions expire after `ttl` of inactivity.
	"""

	def __init__(self, *, secret: Optional[str] = None, ttl: Optional[timedelta] = None, max_failures: Optional[int] = None, cfg: Optional[Settings] = None) -> None:
		cfg = cfg or default_settings
		self._secret = secret if secret is not None else cfg.session_secret
		self.ttl = ttl if ttl is not None else timedelta(minutes=cfg.key_session_ttl_minutes)
		self.max_failures = max_failures if max_failures is not None else cfg.key_max_failures
		self._sessions: Dict[str, Dict[str, ApiKeyEntry]] = {}
		self._lock = threading.Lock()

	def _cipher(self, session_id: str) -> AESGCM:
		derived = hashlib.sha256((session_id + self._secret).encode("utf-8")).digest()
		return AESGCM(derived)

	def _encrypt(self, key: str, session_id: str) -> bytes:
		nonce = os.urandom(12)
		return nonce + self._cipher(session_id).encrypt(nonce, key.encode("utf-8"), session_id.encode("utf-8"))

	def _decrypt(self, blob: bytes, session_id: str) -> str:
		nonce, sealed = blob[:12], blob[12:]
		try:
			return self._cipher(session_id).decrypt(nonce, sealed, session_id.encode("utf-8")).decode("utf-8")
		except InvalidTag as err:
			raise KeyDecryptionError("Failed to decrypt API key") from err

	def initialize_session(self, session_id: str, raw_keys: Sequence[Tuple[str, str]]) -> KeySessionResult:
		"""Validate and store ``(name, key)`` pairs. One key per detected provider."""
		errors: List[str] = []
		entries: Dict[str, ApiKeyEntry] = {}
		seen: set = set()
		for name, key in raw_keys:
			validation = validate_key_format(key)
			if not validation.is_valid:
				errors.append(f"{name}: {validation.error}")
				continue
			if validation.provider in seen and validation.provider is not ProviderId.UNKNOWN:
				errors.append(f"{name}: Duplicate provider ({validation.provider.value}). Only one key per provider allowed.")
				continue
			entry = ApiKeyEntry(
				id=secrets.token_hex(16),
				provider=validation.provider,
				ciphertext=self._encrypt(key.strip(), session_id),
			)
			entries[entry.id] = entry
			seen.add(validation.provider)

		if not entries:
			return KeySessionResult(False, 0, errors)
		with self._lock:
			self._sessions[session_id] = entries
		self.cleanup_expired_sessions()
		return KeySessionResult(True, len(entries), errors)

	def _usable(self, entry: ApiKeyEntry) -> bool:
		return entry.is_valid and entry.failure_count < self.max_failures

	def get_available_keys(self, session_id: str) -> List[ApiKeyEntry]:
		session = self._sessions.get(session_id)
		if not session:
			return []
		entries = [e for e in session.values() if self._usable(e)]
		# fewer failures first, then most recently used
		entries.sort(key=lambda e: (e.failure_count, -e.last_used.timestamp()))
		return entries

	def get_decrypted_key(self, session_id: str, key_id: str) -> Optional[str]:
		session = self._sessions.get(session_id)
		if not session:
			return None
		entry = session.get(key_id)
		if not entry or not self._usable(entry):
			return None
		try:
			return self._decrypt(entry.ciphertext, session_id)
		except KeyDecryptionError:
			self.mark_key_failure(session_id, key_id, "Decryption failed")
			return None

	def credentials(self, session_id: str) -> List[ApiKeyCredential]:
		creds: List[ApiKeyCredential] = []
		for entry in self.get_available_keys(session_id):
			key = self.get_decrypted_key(session_id, entry.id)
			if key is not None:
				creds.append(ApiKeyCredential(key=key, provider=entry.provider, key_id=entry.id))
		return creds

	def mark_key_failure(self, session_id: str, key_id: str, error: str) -> None:
		with self._lock:
			entry = self._sessions.get(session_id, {}).get(key_id)
			if not entry:
				return
			entry.failure_count += 1
			entry.last_error = error
			entry.last_used = datetime.utcnow()
			if entry.failure_count >= self.max_failures:
				entry.is_valid = False
				logger.info("key %s in a key session invalidated after %d failures", entry.provider.value, entry.failure_count)

	def mark_key_success(self, session_id: str, key_id: str) -> None:
		with self._lock:
			entry = self._sessions.get(session_id, {}).get(key_id)
			if not entry:
				return
			entry.failure_count = max(0, entry.failure_count - 1)
			entry.last_used = datetime.utcnow()
			entry.last_error = None

	def record_attempts(self, session_id: str, attempts: Iterable[ProviderAttempt]) -> None:
		"""Feed gateway attempt outcomes back into the per-key failure counters."""
		for attempt in attempts:
			if not attempt.key_id:
				continue
			if attempt.error_kind is None:
				self.mark_key_success(session_id, attempt.key_id)
			else:
				self.mark_key_failure(session_id, attempt.key_id, attempt.error_kind.value)

	def get_key_by_provider(self, session_id: str, provider: ProviderId) -> Optional[ApiKeyEntry]:
		for entry in self._sessions.get(session_id, {}).values():
			if entry.provider is provider and self._usable(entry):
				return entry
		return None

	def has_session(self, session_id: str) -> bool:
		return session_id in self._sessions

	def clear_session(self, session_id: str) -> None:
		with self._lock:
			self._sessions.pop(session_id, None)

	def cleanup_expired_sessions(self, now: Optional[datetime] = None) -> int:
		now = now or datetime.utcnow()
		removed = 0
		with self._lock:
			for session_id in list(self._sessions):
				entries = self._sessions[session_id].values()
				if not any(now - e.last_used < self.ttl for e in entries):
					del self._sessions[session_id]
					removed += 1
		return removed
