"""Error taxonomy for generation.

Every condition here is resolved by the orchestrator into a terminal
message state; none of them is meant to reach the caller of run_model.
"""


class ChatloomError(Exception):
    """Base class for chatloom errors."""


class MissingCredentialError(ChatloomError):
    """No credential resolves for a provider family that requires one."""

    def __init__(self, family: str):
        self.family = family
        super().__init__(
            f"{family} API key is missing. Check .env or settings"
        )


class ProviderError(ChatloomError):
    """Failure surfaced by a provider client, not caused by cancellation."""

    def __init__(self, family: str, message: str, original: BaseException | None = None):
        self.family = family
        self.original = original
        super().__init__(f"[{family}] {message}")


class GenerationCancelled(ChatloomError):
    """The cancellation token of a generation was triggered."""


class UnknownModelError(ChatloomError):
    """A model or assistant key is not present in the catalog."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Model not found: {key}")
