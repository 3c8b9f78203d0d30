from ridehail.infra.secrets.token_file import TokenFileError, TokenFileStore

__all__ = [
    "TokenFileError",
    "TokenFileStore",
]
