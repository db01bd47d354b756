"""Exception types raised by the credential engine."""


class OpenBadgesError(Exception):
    """Base error. ``context`` holds the offending field/value for callers."""

    code = "OPENBADGES_ERROR"

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class ConfigurationError(OpenBadgesError):
    code = "CONFIGURATION_ERROR"


class SigningError(OpenBadgesError):
    code = "SIGNING_ERROR"


class VerificationError(OpenBadgesError):
    code = "VERIFICATION_ERROR"


class ValidationError(OpenBadgesError):
    """Schema validation failure; ``errors`` is the list of field errors."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: list | None = None, context: dict | None = None):
        super().__init__(message, context)
        self.errors = list(errors or [])


class BakingError(OpenBadgesError):
    code = "BAKING_ERROR"


class ExtractionError(OpenBadgesError):
    code = "EXTRACTION_ERROR"


class KeyFormatError(OpenBadgesError):
    code = "KEY_FORMAT_ERROR"


class EncodingError(OpenBadgesError):
    code = "ENCODING_ERROR"


class CanonicalizationError(OpenBadgesError):
    code = "CANONICALIZATION_ERROR"
