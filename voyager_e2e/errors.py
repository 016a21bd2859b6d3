from __future__ import annotations


class HarnessError(RuntimeError):
    """Base class for failures raised while orchestrating the stack."""


class ProcessFailure(HarnessError):
    """Raised when a child reports a failure marker or exits before it is ready."""

    def __init__(
        self,
        cmd: list[str] | tuple[str, ...],
        *,
        text: str | None = None,
        returncode: int | None = None,
    ) -> None:
        joined = " ".join(cmd)
        if text is not None:
            message = f"Command failed: {joined}\nSTDOUT:\n{text.strip()}"
        else:
            message = f"Command exited ({returncode}) before reporting readiness: {joined}"
        super().__init__(message)
        self.cmd = tuple(cmd)
        self.text = text
        self.returncode = returncode


class ParseFailure(ProcessFailure):
    """Raised when a structured payload on the success path is not valid JSON."""


class ReadinessTimeout(HarnessError, TimeoutError):
    """Raised when a bounded readiness wait expires."""


class WebDriverError(HarnessError):
    """Raised when the automation endpoint answers with a WebDriver error payload."""

    def __init__(self, status_code: int, error: str, message: str) -> None:
        super().__init__(f"WebDriver error {status_code} ({error}): {message}")
        self.status_code = status_code
        self.error = error
        self.message = message


class InvalidTransition(HarnessError):
    """Raised when an app driver operation is called from a state that forbids it."""
