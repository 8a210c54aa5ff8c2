import pytest

from utils.email_format import is_valid_code, is_valid_email


@pytest.mark.parametrize("email", ["a@example.com", "first.last+tag@sub.example.co.uk", "A@Example.COM"])
def test_valid_emails(email):
    assert is_valid_email(email)


@pytest.mark.parametrize(
    "email",
    ["", None, "plainaddress", "a@b", "a @example.com", "a@exa mple.com", "a@@example.com", "a@example.com\n", 42],
)
def test_invalid_emails(email):
    assert not is_valid_email(email)


@pytest.mark.parametrize("code", ["123456", "000000", "999999"])
def test_valid_codes(code):
    assert is_valid_code(code)


@pytest.mark.parametrize("code", ["", None, "12345", "1234567", "12a456", " 123456", "123456\n", "١٢٣٤٥٦"])
def test_invalid_codes(code):
    assert not is_valid_code(code)
