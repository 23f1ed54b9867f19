"""Provider error hierarchy for Research Agents.

Defines unified exception types for all AI provider errors.
Used by adapters, ProviderManager and agents to communicate error conditions.
Vendor SDK exceptions never leave an adapter: they are wrapped into
ProviderRequestError (or one of its subclasses) with the original as cause.

Example:
    >>> from src.utils.llm_errors import ProviderRequestError
    >>> try:
    ...     raise ProviderRequestError("openai", ValueError("boom"))
    ... except ProviderRequestError as e:
    ...     print(e.provider)
    openai
"""


class ProviderError(Exception):
    """Base class for provider-related errors.

    All provider exceptions inherit from this class, allowing callers
    to catch every provider error with a single except clause.

    Example:
        >>> raise ProviderError("Generic provider failure")
        Traceback (most recent call last):
        ...
        ProviderError: Generic provider failure
    """

    pass


class ProviderInitError(ProviderError):
    """Provider could not be initialized.

    Raised when the credential is missing or invalid, or when the vendor
    rejects the reachability check performed during initialize().

    Example:
        >>> e = ProviderInitError("openai", "API key not found")
        >>> e.provider
        'openai'
    """

    def __init__(self, provider: str, message: str) -> None:
        """Initialize init error.

        Args:
            provider: Provider identity that failed.
            message: Description of the failure.
        """
        self.provider = provider
        super().__init__(f"{provider} provider initialization failed: {message}")


class UnsupportedProviderError(ProviderInitError):
    """Provider identity is not one of the supported variants.

    Example:
        >>> e = UnsupportedProviderError("mistral")
        >>> e.name
        'mistral'
    """

    def __init__(self, name: str, supported: list[str] | None = None) -> None:
        """Initialize unsupported provider error.

        Args:
            name: Identity that was requested.
            supported: Identities that are accepted, for the message.
        """
        self.name = name
        self.supported = supported or []
        message = f"Unknown provider: {name}"
        if self.supported:
            message += f". Supported providers: {', '.join(self.supported)}"
        super().__init__(name, message)


class ProviderRequestError(ProviderError):
    """Vendor call failed during chat or tool-call request.

    Always tags the provider that produced the failure and keeps
    the underlying exception in `cause`.

    Example:
        >>> e = ProviderRequestError("claude", RuntimeError("overloaded"))
        >>> str(e)
        'claude provider error: overloaded'
    """

    def __init__(self, provider: str, cause: BaseException | str) -> None:
        """Initialize request error.

        Args:
            provider: Provider identity that produced the error.
            cause: Underlying exception or description.
        """
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider} provider error: {cause}")


class ProviderRateLimitError(ProviderRequestError):
    """Vendor rejected the request with a rate limit.

    Example:
        >>> e = ProviderRateLimitError("openai", "429 Too Many Requests")
        >>> isinstance(e, ProviderRequestError)
        True
    """

    pass


class ProviderTimeoutError(ProviderRequestError):
    """Vendor request exceeded its timeout.

    Example:
        >>> e = ProviderTimeoutError("gemini", "read timeout")
        >>> e.provider
        'gemini'
    """

    pass


class NoActiveProviderError(ProviderError):
    """No provider is selected, or the selection is not registered.

    Example:
        >>> raise NoActiveProviderError("No active AI provider available (auto mode)")
        Traceback (most recent call last):
        ...
        NoActiveProviderError: No active AI provider available (auto mode)
    """

    pass


class ProviderNotAvailableError(ProviderError):
    """Requested provider is not present in the registry.

    Example:
        >>> e = ProviderNotAvailableError("claude")
        >>> str(e)
        "Provider 'claude' is not available"
    """

    def __init__(self, name: str) -> None:
        """Initialize not-available error.

        Args:
            name: Provider identity that was requested.
        """
        self.name = name
        super().__init__(f"Provider '{name}' is not available")


class NoAvailableProviderError(ProviderError):
    """Neither the preferred provider nor the fallback could serve a request.

    Example:
        >>> raise NoAvailableProviderError("No available AI providers can handle this request")
        Traceback (most recent call last):
        ...
        NoAvailableProviderError: No available AI providers can handle this request
    """

    pass
