"""Provider adapter registry.

Maps a catalog model to a streaming client and decides where each
family's credential comes from. Nothing here touches the network.
"""

import logging
import os
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from .. import config
from ..cancellation import CancellationToken
from ..errors import MissingCredentialError
from .base import LLMProvider
from .client import StreamingClient
from .factory import create_llm_provider
from .models import BaseModelFamily, GenerationParams

if TYPE_CHECKING:
    from ..catalog import ModelInfo
    from ..tools.base import BaseTool

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., LLMProvider]


def operator_credentials_from_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Read operator-managed credentials from the process environment."""
    environ = os.environ if environ is None else environ
    credentials = {}
    for family, variable in config.OPERATOR_CREDENTIAL_ENV.items():
        value = environ.get(variable)
        if value:
            credentials[family] = value
    return credentials


class ProviderRegistry:
    """Resolves credentials and builds streaming clients per model family.

    Operator-managed families (openai, gemini) always resolve from the
    process-level credentials given at construction; user credentials are
    never consulted for them. Every other family resolves from the user's
    per-family credentials.
    """

    def __init__(
        self,
        operator_credentials: Mapping[str, str] | None = None,
        ollama_base_url: str = config.DEFAULT_OLLAMA_BASE_URL,
        provider_factory: ProviderFactory = create_llm_provider,
    ):
        """Initialize registry.

        Args:
            operator_credentials: family -> key; read from the environment when None
            ollama_base_url: Default Ollama server URL
            provider_factory: Callable building an LLMProvider from (family, **config)
        """
        if operator_credentials is None:
            operator_credentials = operator_credentials_from_env()
        self._operator_credentials = dict(operator_credentials)
        self._ollama_base_url = ollama_base_url
        self._provider_factory = provider_factory

    @staticmethod
    def is_operator_managed(family: BaseModelFamily | str) -> bool:
        return BaseModelFamily(family).value in config.OPERATOR_CREDENTIAL_ENV

    @staticmethod
    def requires_credential(family: BaseModelFamily | str) -> bool:
        return BaseModelFamily(family).value not in config.CREDENTIAL_OPTIONAL_FAMILIES

    def resolve_credential(
        self,
        family: BaseModelFamily | str,
        user_credentials: Mapping[str, str] | None = None,
    ) -> str | None:
        """Resolve the credential for a family.

        Args:
            family: Provider family
            user_credentials: User-supplied keys by family

        Returns:
            The credential, or None when nothing resolves
        """
        family_key = BaseModelFamily(family).value
        if self.is_operator_managed(family_key):
            return self._operator_credentials.get(family_key) or None
        return (user_credentials or {}).get(family_key) or None

    def create_streaming_client(
        self,
        model_info: "ModelInfo",
        credential: str | None,
        params: GenerationParams,
        token: CancellationToken,
        base_url: str | None = None,
    ) -> StreamingClient:
        """Build a streaming client for a model.

        Args:
            model_info: Catalog entry of the model
            credential: Resolved credential (may be None for ollama)
            params: Clamped generation parameters
            token: Cancellation token of the generation
            base_url: Alternate server URL for self-hosted families

        Returns:
            StreamingClient bound to params and token

        Raises:
            MissingCredentialError: If the family requires a credential and none was given
        """
        family = BaseModelFamily(model_info.base_model)
        if credential is None and self.requires_credential(family):
            raise MissingCredentialError(family.value)

        provider_config: dict[str, Any] = {
            "model": model_info.key,
            "max_retries": config.PROVIDER_MAX_RETRIES[family.value],
        }
        if credential is not None:
            provider_config["api_key"] = credential
        if family is BaseModelFamily.OLLAMA:
            provider_config["base_url"] = base_url or self._ollama_base_url

        provider = self._provider_factory(family.value, **provider_config)
        logger.debug("Created %s client for %s", family.value, model_info.key)
        return StreamingClient(provider=provider, params=params, token=token)

    def bind_tools(
        self,
        client: StreamingClient,
        tools: list["BaseTool"],
        token: CancellationToken,
    ) -> StreamingClient:
        """Return a client with the tools bound in the family's native format."""
        return client.bind_tools([tool.to_llm_spec() for tool in tools], token=token)
