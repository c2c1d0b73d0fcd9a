from __future__ import annotations

import json
from pathlib import Path
from typing import Any, cast

import pytest

from class_playlist.scripts.export_openapi import write_schema
from class_playlist.scripts.link_account import describe_status, link_account
from class_playlist.services.account_linking import AccountStatus
from class_playlist.services.errors import AuthError

_UNLINKED = AccountStatus(
    linked=False, youtube_user_id=None, playlist_id=None, authorization_pending=False
)
_LINKED = AccountStatus(
    linked=True, youtube_user_id="classadmin", playlist_id=None, authorization_pending=False
)


class _FakeAccounts:
    def __init__(self, status: AccountStatus, *, complete_error: Exception | None = None) -> None:
        self._status = status
        self._complete_error = complete_error
        self.verifiers: list[str] = []

    def status(self) -> AccountStatus:
        return self._status

    def start_authorization(self) -> str:
        return "https://www.google.com/accounts/OAuthAuthorizeToken?oauth_token=req"

    def complete_authorization(self, verifier: str) -> AccountStatus:
        self.verifiers.append(verifier)
        if self._complete_error is not None:
            raise self._complete_error
        self._status = _LINKED
        return self._status


def test_link_account_walks_through_authorization() -> None:
    accounts = _FakeAccounts(_UNLINKED)
    output: list[str] = []

    status = link_account(
        cast(Any, accounts),
        read_verifier=lambda _prompt: "  verifier-123 \n",
        echo=output.append,
    )

    assert status.linked is True
    assert accounts.verifiers == ["verifier-123"]
    assert "https://www.google.com/accounts/OAuthAuthorizeToken?oauth_token=req" in output
    assert output[-1] == "Linked YouTube account: classadmin"


def test_link_account_skips_when_already_linked() -> None:
    accounts = _FakeAccounts(_LINKED)
    output: list[str] = []

    def _unexpected_prompt(_prompt: str) -> str:
        raise AssertionError("verifier should not be requested")

    status = link_account(cast(Any, accounts), read_verifier=_unexpected_prompt, echo=output.append)

    assert status is _LINKED
    assert output == ["Account already linked: classadmin"]


def test_link_account_propagates_auth_errors() -> None:
    accounts = _FakeAccounts(_UNLINKED, complete_error=AuthError("denied"))

    with pytest.raises(AuthError, match="denied"):
        link_account(cast(Any, accounts), read_verifier=lambda _prompt: "bad", echo=lambda _line: None)


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (_UNLINKED, "Account not linked."),
        (
            AccountStatus(
                linked=False, youtube_user_id=None, playlist_id=None, authorization_pending=True
            ),
            "Account authorization pending.",
        ),
        (_LINKED, "Linked account classadmin; playlist none selected."),
        (
            AccountStatus(
                linked=True,
                youtube_user_id="classadmin",
                playlist_id="PLclass",
                authorization_pending=False,
            ),
            "Linked account classadmin; playlist PLclass.",
        ),
    ],
)
def test_describe_status(status: AccountStatus, expected: str) -> None:
    assert describe_status(status) == expected


def test_write_schema_exports_routes(tmp_path: Path) -> None:
    schema_path = write_schema(tmp_path / "openapi" / "class-playlist.json")

    schema = json.loads(schema_path.read_text(encoding="utf-8"))
    assert schema["info"]["title"] == "Class Playlist API"
    assert "/content/published" in schema["paths"]
    assert "/account/callback" in schema["paths"]
