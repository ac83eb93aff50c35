from __future__ import annotations


class PromptsmithError(Exception):
    """Base class for errors raised by the engine."""


class SuiteValidationError(PromptsmithError):
    """A suite definition is missing required fields or has no usable entries."""


class NotFoundError(PromptsmithError):
    """A prompt or prompt version could not be resolved."""


class ProviderLookupError(PromptsmithError):
    def __init__(self, model: str, vendor: str) -> None:
        super().__init__(f"no provider registered for model {model} (provider: {vendor})")
        self.model = model
        self.vendor = vendor


class RenderError(PromptsmithError):
    """The prompt template failed to parse or render."""


class ExecutionError(PromptsmithError):
    """A completion call failed (network, vendor or auth error)."""


class AssertionConfigError(PromptsmithError):
    """An assertion is malformed, e.g. an invalid regex or non-numeric bound."""
