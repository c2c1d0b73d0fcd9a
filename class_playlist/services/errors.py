from __future__ import annotations


class PlaylistSyncError(Exception):
    pass


class ScanFormatError(PlaylistSyncError):
    def __init__(self, candidate: str) -> None:
        super().__init__(f"Not a valid YouTube video id: {candidate!r}")
        self.candidate = candidate


class RemoteLookupFailure(PlaylistSyncError):
    def __init__(self, message: str, *, external_id: str) -> None:
        super().__init__(message)
        self.external_id = external_id


class TransportError(PlaylistSyncError):
    pass


class AuthError(PlaylistSyncError):
    pass


class AccountNotLinkedError(AuthError):
    pass
