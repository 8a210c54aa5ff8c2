"""
Numeric one-time code generation for email verification and password reset.
"""
import secrets

CODE_LENGTH = 6
CODE_MIN = 100000
CODE_MAX = 999999

_system_random = secrets.SystemRandom()


def generate_code(rng=None) -> str:
    """
    Generate a 6-digit verification code drawn uniformly from [100000, 999999].

    Args:
        rng: Optional ``random.Random``-compatible source. Defaults to the
            operating system CSPRNG so codes cannot be predicted from earlier
            outputs. Tests pass a seeded ``random.Random`` for repeatability.

    Returns:
        str: The code, always exactly six decimal digits.
    """
    source = rng or _system_random
    return str(source.randint(CODE_MIN, CODE_MAX))
