from dataclasses import dataclass, field

API_FORMATS = ("openai", "anthropic")
PROVIDER_KINDS = ("oauth", "api_key")


@dataclass
class Provider:
    """Configuration for a specific upstream provider.

    OAuth providers take their bearer token from the credential store at
    request time; API-key providers carry the key here.
    """

    key: str
    kind: str
    base_url: str
    api_format: str = "openai"  # "openai" or "anthropic"
    label: str = ""
    api_key: str | None = None
    models: tuple[str, ...] = ()
    timeout: int = 90
    max_retries: int = 2
    custom_headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_anthropic_format(self) -> bool:
        """Check if this provider uses Anthropic API format"""
        return self.api_format == "anthropic"

    @property
    def uses_oauth(self) -> bool:
        return self.kind == "oauth"

    def __post_init__(self) -> None:
        """Validate configuration after initialization"""
        if not self.key:
            raise ValueError("Provider name is required")
        if self.kind not in PROVIDER_KINDS:
            raise ValueError(f"Invalid provider kind '{self.kind}' for provider '{self.key}'")
        if self.kind == "api_key" and not self.api_key:
            raise ValueError(f"API key is required for provider '{self.key}'")
        if not self.base_url:
            raise ValueError(f"Base URL is required for provider '{self.key}'")
        if self.api_format not in API_FORMATS:
            raise ValueError(
                f"Invalid API format '{self.api_format}' for provider '{self.key}'. "
                f"Must be 'openai' or 'anthropic'"
            )
        if not self.label:
            self.label = self.key
        self.base_url = self.base_url.rstrip("/")
