import re

# local-part "@" domain "." tld, no embedded whitespace
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
CODE_PATTERN = re.compile(r'^\d{6}$', re.ASCII)


def is_valid_email(email) -> bool:
    """Syntactic check only; addresses are compared exactly as given."""
    if not email or not isinstance(email, str):
        return False
    return EMAIL_PATTERN.fullmatch(email) is not None


def is_valid_code(code) -> bool:
    if not code or not isinstance(code, str):
        return False
    return CODE_PATTERN.fullmatch(code) is not None
