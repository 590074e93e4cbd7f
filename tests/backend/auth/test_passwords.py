import pytest

from backend.auth.passwords import hash_password, verify_password


def test_hash_password_does_not_store_plain_text() -> None:
    hashed = hash_password('admin123')

    assert hashed != 'admin123'
    assert verify_password('admin123', hashed) is True
    assert verify_password('admin124', hashed) is False


def test_hash_password_rejects_non_string() -> None:
    with pytest.raises(TypeError):
        hash_password(None)


@pytest.mark.parametrize(
    ('password', 'hashed'),
    [
        ('', '$pbkdf2-sha256$29000$abc$def'),
        ('admin123', None),
        ('admin123', 'not-a-real-hash'),
    ],
)
def test_verify_password_rejects_missing_or_unreadable_input(password: str, hashed: str | None) -> None:
    assert verify_password(password, hashed) is False
