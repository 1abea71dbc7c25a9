"""Provider token discovery from the process environment.

Tokens have been configured under many names over time (and occasionally
pasted into the wrong place), so resolution walks a fixed chain:

1. the canonical variable names, in configured order
2. the same names lower-cased
3. every variable *value*, looking for a token-shaped chunk
4. every variable *name*, in case the token was pasted as the name

The first hit wins. Not finding a token is a normal outcome that sends
requests down the fallback path, so :meth:`CredentialResolver.resolve`
never raises.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence

from marketgate.config import get_settings
from marketgate.utils import preview_token

_DISALLOWED_LITERALS = re.compile(r"^(true|false|null|undefined|yes|no|0|1)$", re.IGNORECASE)
_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{24,128}$")
_SPLIT_RE = re.compile(r"[^A-Za-z0-9_-]+")
_HAS_DIGIT_RE = re.compile(r"\d")


class CredentialSource(str, Enum):
    NONE = ""
    PREFERRED = "preferred"
    LOWERCASE = "lowercase"
    SCAN = "scan"
    NAME_AS_TOKEN = "name-as-token"


@dataclass(frozen=True)
class Credential:
    key: str = ""
    token: str = ""
    source: CredentialSource = CredentialSource.NONE

    @property
    def present(self) -> bool:
        return bool(self.token)

    @property
    def preview(self) -> str:
        return preview_token(self.token)

    @property
    def chosen_key(self) -> str:
        if not self.present:
            return ""
        return f"env:{self.key}"

    def __repr__(self) -> str:
        return f"Credential(key={self.key!r}, token={self.preview!r}, source={self.source.value!r})"


def extract_token(value: str | None) -> str:
    """Return a token-shaped substring of ``value``, or ``""``."""
    if not isinstance(value, str):
        return ""
    trimmed = value.strip()
    if not trimmed or _DISALLOWED_LITERALS.match(trimmed):
        return ""
    if _TOKEN_RE.match(trimmed):
        return trimmed
    for part in _SPLIT_RE.split(trimmed):
        if part and _TOKEN_RE.match(part):
            return part
    return ""


class CredentialResolver:
    """Find the Tiingo token in an environment mapping."""

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        keys: Sequence[str] | None = None,
        *,
        scan_values: bool | None = None,
        scan_names: bool | None = None,
    ) -> None:
        settings = get_settings()
        self._environ = environ
        self._keys = list(keys if keys is not None else settings.tiingo_token_env_keys)
        self._scan_values = settings.credential_scan_values if scan_values is None else scan_values
        self._scan_names = settings.credential_scan_names if scan_names is None else scan_names

    @property
    def keys(self) -> list[str]:
        return list(self._keys)

    def _env(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    def _read(self, key: str) -> str:
        raw = self._env().get(key)
        if not isinstance(raw, str):
            return ""
        return raw.strip()

    def resolve(self) -> Credential:
        env = self._env()

        for key in self._keys:
            token = extract_token(self._read(key))
            if token:
                return Credential(key=key, token=token, source=CredentialSource.PREFERRED)

        for key in self._keys:
            lower = key.lower()
            token = extract_token(self._read(lower))
            if token:
                return Credential(key=lower, token=token, source=CredentialSource.LOWERCASE)

        if self._scan_values:
            for name, value in env.items():
                token = extract_token(value)
                if token:
                    return Credential(key=name, token=token, source=CredentialSource.SCAN)

        if self._scan_names:
            # Conventional variable names are long enough to look like tokens;
            # a pasted token will carry digits.
            for name in env.keys():
                token = extract_token(name)
                if token and _HAS_DIGIT_RE.search(token):
                    return Credential(key=name, token=token, source=CredentialSource.NAME_AS_TOKEN)

        return Credential()

    def is_present(self, key: str) -> bool:
        return self._read(key) != ""

    def describe(self) -> dict[str, Any]:
        """Diagnostics for the env-check endpoint; never includes the token."""
        credential = self.resolve()
        return {
            "hasToken": credential.present,
            "chosenKey": credential.key,
            "source": credential.source.value,
            "tokenPreview": credential.preview,
            "resolvedFromScan": credential.source in (CredentialSource.SCAN, CredentialSource.NAME_AS_TOKEN),
            "candidates": {key: self.is_present(key) for key in self._keys},
            "order": list(self._keys),
        }
