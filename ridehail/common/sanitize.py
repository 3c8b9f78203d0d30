def maskSecret(value: str | None) -> str | None:
    """
    Назначение:
        Маскирует секреты (bearer-токены, client secret) для вывода в stdout/logs.

    Входные данные:
        value: str | None
            Исходное значение.

    Выходные данные:
        str | None
            Если value задано, возвращает '***', иначе None.
    """
    if value is None:
        return None
    return "***"


def truncateText(value: str | None, limit: int = 500) -> str | None:
    """
    Назначение:
        Ограничивает длину текста, чтобы тела ответов не раздували логи и ошибки.

    Входные данные:
        value: str | None
            Текст для усечения.
        limit: int
            Максимально допустимая длина строки.

    Выходные данные:
        str | None
            Строка, не длиннее limit символов; None, если вход None.
    """
    if value is None:
        return None
    if len(value) <= limit:
        return value
    suffix = "..." if limit > 3 else ""
    head = limit - len(suffix)
    return value[:head] + suffix


def maskSecretsInObject(
    obj: object,
    sensitive_keys: tuple[str, ...] = (
        "access_token",
        "refresh_token",
        "token",
        "authorization",
        "client_secret",
        "oauth2_client_secret",
    ),
) -> object:
    """
    Рекурсивно маскирует значения по заданным ключам в dict/list.
    Используется при записи настроек команды в лог.
    """
    sensitive = {key.lower() for key in sensitive_keys}
    if isinstance(obj, dict):
        masked: dict[str, object] = {}
        for k, v in obj.items():
            if str(k).lower() in sensitive:
                masked[k] = maskSecret(str(v) if v is not None else None)
            else:
                masked[k] = maskSecretsInObject(v, sensitive_keys)
        return masked
    if isinstance(obj, list):
        return [maskSecretsInObject(item, sensitive_keys) for item in obj]
    return obj
