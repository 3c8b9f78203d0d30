from __future__ import annotations

from typing import Protocol


class TokenSourceProtocol(Protocol):
    """
    Назначение:
        Порт источника bearer-токена для UberClient.
    Взаимодействия:
        Клиент вызывает access_token() перед каждым запросом вне собственного lock.
    Ограничения:
        Реализация сама решает, когда обновлять токен; пустая строка означает
        отсутствие токена (заголовок Authorization не отправляется).
    """

    def access_token(self) -> str:
        ...


__all__ = ["TokenSourceProtocol"]
