from __future__ import annotations

import argparse
from collections.abc import Callable

from class_playlist.dependencies import get_account_service, get_settings
from class_playlist.logging_config import configure_console_logging
from class_playlist.services.account_linking import AccountLinkingService, AccountStatus
from class_playlist.services.errors import PlaylistSyncError


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Link a YouTube account to the class playlist of this network.",
    )
    parser.add_argument(
        "--verifier",
        type=str,
        default=None,
        help="OAuth verifier shown after signing in. Prompted for when omitted.",
    )
    parser.add_argument(
        "--playlist",
        type=str,
        default=None,
        help="Playlist id to mirror the class playlist into once linked.",
    )
    parser.add_argument(
        "--unlink",
        action="store_true",
        help="Forget the linked account, its tokens and the selected playlist.",
    )
    return parser.parse_args()


def link_account(
    accounts: AccountLinkingService,
    *,
    read_verifier: Callable[[str], str],
    echo: Callable[[str], None] = print,
) -> AccountStatus:
    status = accounts.status()
    if status.linked:
        echo(f"Account already linked: {status.youtube_user_id}")
        return status

    authorization_url = accounts.start_authorization()
    echo("Open this URL, sign in and approve access:")
    echo(authorization_url)
    verifier = read_verifier("Verifier: ").strip()
    status = accounts.complete_authorization(verifier)
    echo(f"Linked YouTube account: {status.youtube_user_id}")
    return status


def describe_status(status: AccountStatus) -> str:
    if not status.linked:
        state = "authorization pending" if status.authorization_pending else "not linked"
        return f"Account {state}."
    playlist = status.playlist_id or "none selected"
    return f"Linked account {status.youtube_user_id}; playlist {playlist}."


def main() -> None:
    args = _parse_args()
    configure_console_logging(get_settings().log_level)
    accounts = get_account_service()

    if args.unlink:
        print(describe_status(accounts.unlink()))
        return

    try:
        if args.verifier is not None:
            status = link_account(accounts, read_verifier=lambda _prompt: args.verifier)
        else:
            status = link_account(accounts, read_verifier=input)

        playlists = accounts.list_playlists()
        print("Playlists:")
        for index, playlist in enumerate(playlists, start=1):
            print(f"{index}. {playlist.name} [{playlist.playlist_id}]")

        if args.playlist is not None:
            status = accounts.select_playlist(args.playlist)
    except PlaylistSyncError as exc:
        raise SystemExit(f"Linking failed: {exc}") from exc

    print(describe_status(status))


if __name__ == "__main__":
    main()
