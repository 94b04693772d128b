"""Formula-specific exceptions.

Every error is terminal for the current install attempt. Each class names the
pipeline stage it belongs to so callers can report where an install broke.
"""


class FormulaError(Exception):
    """Base exception for formula operations."""

    stage = "formula"

    def __init__(self, message: str, context: dict | None = None):
        """Initialize with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dict with additional context (paths, URLs, hashes, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class ManifestError(FormulaError):
    """Release manifest is missing, unreadable, or malformed."""

    stage = "manifest"


class ResolutionError(FormulaError):
    """No artifact source for the requested platform and strategy."""

    stage = "resolve"


class AcquisitionError(FormulaError):
    """Download or build failed."""

    stage = "acquire"


class IntegrityError(FormulaError):
    """Computed checksum does not match the declared checksum."""

    stage = "verify"


class DirectoryError(FormulaError):
    """Runtime directories could not be created."""

    stage = "prepare"


class RegistrationError(FormulaError):
    """Service descriptor could not be produced."""

    stage = "register"


class AcceptanceError(FormulaError):
    """Installed binary failed its smoke test."""

    stage = "accept"


class ReceiptError(FormulaError):
    """Install receipt could not be written."""

    stage = "record"
