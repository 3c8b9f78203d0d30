from __future__ import annotations

import json
import os
from pathlib import Path

from ridehail.errors import AppError
from ridehail.infra.auth.oauth2 import OAuth2Token


class TokenFileError(AppError):
    def __init__(self, message: str, path: str | Path):
        super().__init__(
            category="credentials",
            code="TOKEN_FILE_INVALID",
            message=message,
            retryable=False,
            details={"path": str(path)},
        )


class TokenFileStore:
    """
    Назначение:
        Хранение OAuth2 токена в JSON-файле учётных данных
        (access_token, token_type, refresh_token, expiry).
    Контракт:
        - read(): отсутствующий/битый/пустой файл -> TokenFileError.
        - write(): создаёт родительские каталоги, файл доступен только владельцу.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def read(self) -> OAuth2Token:
        if not self._path.exists():
            raise TokenFileError(f"credentials file not found: {self._path}", self._path)
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError as exc:
            raise TokenFileError(f"credentials file is not valid JSON: {self._path}", self._path) from exc
        if not isinstance(data, dict):
            raise TokenFileError(f"credentials file must contain a JSON object: {self._path}", self._path)
        token = OAuth2Token.from_dict(data)
        if token.is_blank():
            raise TokenFileError(f"unable to deserialize an OAuth2 token from {self._path}", self._path)
        return token

    def write(self, token: OAuth2Token) -> None:
        if token.is_blank():
            raise TokenFileError("refusing to store a blank OAuth2 token", self._path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # файл создаётся сразу с правами 0600; fchmod поправляет уже существующий
        fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            os.fchmod(f.fileno(), 0o600)
            json.dump(token.to_dict(), f, ensure_ascii=False, indent=2)
