from .email_verification import EmailVerification, PURPOSE_SIGNUP, PURPOSE_RESET, PURPOSES

__all__ = ['EmailVerification', 'PURPOSE_SIGNUP', 'PURPOSE_RESET', 'PURPOSES']
