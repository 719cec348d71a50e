# ===== models/agent_config.py =====
"""
Nested agent configuration: one section per channel plus the AI responder,
webhook, rate limiting and logging sections.
"""

from typing import Any, Dict, List, Literal, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SYSTEM_PROMPT = "You are Jibby, a helpful AI assistant for business communications."

SectionT = TypeVar("SectionT", bound=BaseModel)


class _Section(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WhatsAppConfig(_Section):
    enabled: bool = False
    account_sid: Optional[str] = Field(default=None, alias="accountSid")
    auth_token: Optional[str] = Field(default=None, alias="authToken")
    phone_number_id: Optional[str] = Field(default=None, alias="phoneNumberId")
    webhook_secret: Optional[str] = Field(default=None, alias="webhookSecret")
    webhook_url: Optional[str] = Field(default=None, alias="webhookUrl")


class VoiceConfig(_Section):
    enabled: bool = False
    provider: Literal["twilio", "plivo", "custom"] = "twilio"
    account_sid: Optional[str] = Field(default=None, alias="accountSid")
    auth_token: Optional[str] = Field(default=None, alias="authToken")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    webhook_url: Optional[str] = Field(default=None, alias="webhookUrl")
    language: str = "en-US"
    voice: str = "alice"
    greeting: str = "Hello, you are speaking with Jibby. How can I help you today?"


class FacebookConfig(_Section):
    page_id: Optional[str] = Field(default=None, alias="pageId")
    access_token: Optional[str] = Field(default=None, alias="accessToken")


class InstagramConfig(_Section):
    account_id: Optional[str] = Field(default=None, alias="accountId")
    access_token: Optional[str] = Field(default=None, alias="accessToken")


class TwitterConfig(_Section):
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    api_secret: Optional[str] = Field(default=None, alias="apiSecret")
    access_token: Optional[str] = Field(default=None, alias="accessToken")
    access_token_secret: Optional[str] = Field(default=None, alias="accessTokenSecret")


class SocialPlatformsConfig(_Section):
    facebook: Optional[FacebookConfig] = None
    instagram: Optional[InstagramConfig] = None
    twitter: Optional[TwitterConfig] = None


class SocialMediaConfig(_Section):
    enabled: bool = False
    platforms: SocialPlatformsConfig = Field(default_factory=SocialPlatformsConfig)
    graph_api_url: str = Field(default="https://graph.facebook.com/v19.0", alias="graphApiUrl")


class AIConfig(_Section):
    provider: str = "openai"
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    model: str = "gpt-4"
    temperature: float = 0.7
    max_tokens: int = Field(default=1000, alias="maxTokens")
    system_prompt: Optional[str] = Field(default=DEFAULT_SYSTEM_PROMPT, alias="systemPrompt")
    context_window: int = Field(default=10, alias="contextWindow", ge=0)


class WebhookConfig(_Section):
    url: str = ""
    secret: Optional[str] = None
    events: List[str] = Field(default_factory=lambda: ["*"])


class RateLimitConfig(_Section):
    enabled: bool = True
    max_requests_per_minute: int = Field(default=60, alias="maxRequestsPerMinute")


class LoggingConfig(_Section):
    level: Literal["error", "warn", "info", "debug", "silly"] = "info"
    format: Literal["json", "text"] = "json"


class AgentConfig(_Section):
    id: str = "jibby-default"
    name: str = "Jibby Agent Hub"
    description: Optional[str] = "AI-powered agent hub for business communications"
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig, alias="whatsApp")
    voice: VoiceConfig = Field(default_factory=VoiceConfig)
    social_media: SocialMediaConfig = Field(default_factory=SocialMediaConfig, alias="socialMedia")
    ai: AIConfig = Field(default_factory=AIConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    rate_limiting: RateLimitConfig = Field(default_factory=RateLimitConfig, alias="rateLimiting")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# Section names as they appear in partial updates, mapped to AgentConfig attributes
SECTION_ALIASES = {
    "whatsApp": "whatsapp",
    "socialMedia": "social_media",
    "rateLimiting": "rate_limiting",
}


def normalize_sections(partial: Mapping[str, Any]) -> Dict[str, Any]:
    return {SECTION_ALIASES.get(key, key): value for key, value in partial.items()}


def merge_section(current: SectionT, partial: Union[Mapping[str, Any], BaseModel]) -> SectionT:
    """Return a copy of `current` with only the supplied fields replaced"""
    if isinstance(partial, BaseModel):
        partial = partial.model_dump(exclude_unset=True)
    aliases = {info.alias: name for name, info in type(current).model_fields.items() if info.alias}
    data = current.model_dump()
    data.update({aliases.get(key, key): value for key, value in partial.items()})
    return type(current).model_validate(data)


def changed_fields(before: BaseModel, after: BaseModel) -> List[str]:
    old, new = before.model_dump(), after.model_dump()
    return [name for name in new if old.get(name) != new.get(name)]
