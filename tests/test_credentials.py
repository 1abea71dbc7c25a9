from __future__ import annotations

import subprocess
import sys
from pathlib import Path

from marketgate.credentials import CredentialResolver, CredentialSource, extract_token

TOKEN_A = "a" * 20 + "1234"
TOKEN_B = "b" * 20 + "5678"
KEYS = ["TIINGO_KEY", "TIINGO_API_KEY", "TIINGO_TOKEN"]


def _resolver(env: dict[str, str], **kwargs) -> CredentialResolver:  # noqa: ANN003
    return CredentialResolver(environ=env, keys=KEYS, **kwargs)


def test_preferred_names_win_in_configured_order() -> None:
    cred = _resolver({"TIINGO_TOKEN": TOKEN_B, "TIINGO_API_KEY": TOKEN_A}).resolve()
    assert cred.token == TOKEN_A
    assert cred.key == "TIINGO_API_KEY"
    assert cred.source is CredentialSource.PREFERRED
    assert cred.chosen_key == "env:TIINGO_API_KEY"


def test_lowercase_names_are_tried_second() -> None:
    cred = _resolver({"tiingo_token": TOKEN_B}).resolve()
    assert cred.token == TOKEN_B
    assert cred.key == "tiingo_token"
    assert cred.source is CredentialSource.LOWERCASE


def test_value_scan_finds_token_embedded_in_other_variable() -> None:
    cred = _resolver({"SOME_URL": f"https://api.example.com/?token={TOKEN_A}"}).resolve()
    assert cred.token == TOKEN_A
    assert cred.key == "SOME_URL"
    assert cred.source is CredentialSource.SCAN


def test_token_pasted_as_variable_name_is_found_last() -> None:
    cred = _resolver({TOKEN_B: ""}).resolve()
    assert cred.token == TOKEN_B
    assert cred.source is CredentialSource.NAME_AS_TOKEN


def test_ordinary_long_variable_names_are_not_tokens() -> None:
    cred = _resolver({"SOME_VERY_LONG_CONFIGURATION_NAME": ""}).resolve()
    assert not cred.present
    assert cred.source is CredentialSource.NONE
    assert cred.chosen_key == ""


def test_scans_can_be_disabled() -> None:
    env = {"OTHER": TOKEN_A, TOKEN_B: "x"}
    cred = _resolver(env, scan_values=False, scan_names=False).resolve()
    assert not cred.present


def test_literal_and_short_values_are_rejected() -> None:
    assert extract_token("true") == ""
    assert extract_token(" undefined ") == ""
    assert extract_token("0") == ""
    assert extract_token("short-token") == ""
    assert extract_token(None) == ""
    assert extract_token(f"  {TOKEN_A}  ") == TOKEN_A


def test_empty_environment_resolves_to_absent() -> None:
    cred = _resolver({}).resolve()
    assert not cred.present
    assert cred.preview == ""


def test_describe_never_leaks_the_token() -> None:
    resolver = _resolver({"TIINGO_API_KEY": TOKEN_A, "TIINGO_KEY": "false"})
    info = resolver.describe()
    assert info["hasToken"] is True
    assert info["chosenKey"] == "TIINGO_API_KEY"
    assert info["source"] == "preferred"
    assert info["tokenPreview"] == "aaaa...1234"
    assert info["resolvedFromScan"] is False
    assert info["candidates"] == {"TIINGO_KEY": True, "TIINGO_API_KEY": True, "TIINGO_TOKEN": False}
    assert info["order"] == KEYS
    assert TOKEN_A not in repr(info)
    assert TOKEN_A not in repr(resolver.resolve())


def test_lowercase_hit_is_not_reported_as_scan() -> None:
    info = _resolver({"tiingo_key": TOKEN_A}).describe()
    assert info["source"] == "lowercase"
    assert info["resolvedFromScan"] is False


def test_scan_hit_is_reported_as_scan() -> None:
    info = _resolver({"UNRELATED": TOKEN_B}).describe()
    assert info["source"] == "scan"
    assert info["resolvedFromScan"] is True


def test_module_imports_in_fresh_interpreter() -> None:
    result = subprocess.run(
        [sys.executable, "-c", "import marketgate.credentials"],
        capture_output=True,
        text=True,
        cwd=Path(__file__).resolve().parents[1],
    )
    assert result.returncode == 0, result.stderr
