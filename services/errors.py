class PhishGuardError(Exception):
    """Base class for errors raised by the analysis service."""


class InvalidRequestError(PhishGuardError):
    """A request body is missing a required field or is malformed."""


class AIAnalysisError(PhishGuardError):
    """The Gemini call failed or returned something we can't use."""


class AuthenticationError(PhishGuardError):
    """Missing, unknown or expired credentials."""


class NoActiveAccountsError(PhishGuardError):
    def __init__(self, message: str = "No active email accounts found"):
        super().__init__(message)
