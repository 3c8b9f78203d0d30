from ridehail.common.sanitize import maskSecret, maskSecretsInObject, truncateText


def test_mask_secret():
    assert maskSecret(None) is None
    assert maskSecret("abc") == "***"


def test_truncate_text():
    assert truncateText("short", 10) == "short"
    assert truncateText("x" * 20, 10) == "xxxxxxx..."


def test_mask_secrets_in_nested_object():
    data = {"access_token": "a", "nested": [{"Authorization": "Bearer x", "keep": 1}]}

    assert maskSecretsInObject(data) == {"access_token": "***", "nested": [{"Authorization": "***", "keep": 1}]}
