# config.py - environment settings and the agent configuration built from them
from typing import Any, Dict, Optional

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict

from models.agent_config import (
    DEFAULT_SYSTEM_PROMPT,
    AgentConfig,
    AIConfig,
    FacebookConfig,
    InstagramConfig,
    LoggingConfig,
    SocialMediaConfig,
    SocialPlatformsConfig,
    VoiceConfig,
    WebhookConfig,
    WhatsAppConfig,
)


class Settings(BaseSettings):
    """Process settings read from the environment / .env"""

    model_config = SettingsConfigDict(env_file=".env", env_nested_delimiter="__", extra="ignore")

    # Twilio (WhatsApp + Voice)
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    twilio_whatsapp_number: Optional[str] = None

    # AI providers
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Meta (Facebook Messenger / Instagram Direct)
    facebook_page_id: Optional[str] = None
    facebook_access_token: Optional[str] = None
    instagram_account_id: Optional[str] = None
    instagram_access_token: Optional[str] = None

    # Channel toggles
    whatsapp_enabled: bool = True
    voice_enabled: bool = True
    social_enabled: bool = False

    # AI responder
    ai_provider: str = "openai"
    ai_model: str = "gpt-4"
    ai_temperature: float = 0.7
    ai_max_tokens: int = 1000
    ai_system_prompt: str = DEFAULT_SYSTEM_PROMPT
    ai_context_window: int = 10

    # App settings
    environment: str = "development"
    log_level: str = "info"
    log_format: str = "json"
    log_dir: Optional[str] = None
    port: int = 3000
    api_token: Optional[str] = None
    public_base_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    inbound_queue_size: int = 1000

    @property
    def webhook_base_url(self) -> Optional[str]:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url.rstrip('/')}/webhook"

    def _ai_api_key(self) -> Optional[str]:
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }.get(self.ai_provider)

    def to_agent_config(self) -> AgentConfig:
        """Nested agent configuration for the router"""
        facebook = None
        if self.facebook_page_id or self.facebook_access_token:
            facebook = FacebookConfig(page_id=self.facebook_page_id, access_token=self.facebook_access_token)
        instagram = None
        if self.instagram_account_id or self.instagram_access_token:
            instagram = InstagramConfig(account_id=self.instagram_account_id,
                                        access_token=self.instagram_access_token)

        return AgentConfig(
            whatsapp=WhatsAppConfig(
                enabled=self.whatsapp_enabled,
                account_sid=self.twilio_account_sid,
                auth_token=self.twilio_auth_token,
                phone_number_id=self.twilio_whatsapp_number or self.twilio_phone_number,
                webhook_secret=self.webhook_secret,
                webhook_url=self.webhook_base_url,
            ),
            voice=VoiceConfig(
                enabled=self.voice_enabled,
                account_sid=self.twilio_account_sid,
                auth_token=self.twilio_auth_token,
                phone_number=self.twilio_phone_number,
                webhook_url=self.webhook_base_url,
            ),
            social_media=SocialMediaConfig(
                enabled=self.social_enabled,
                platforms=SocialPlatformsConfig(facebook=facebook, instagram=instagram),
            ),
            ai=AIConfig(
                provider=self.ai_provider,
                api_key=self._ai_api_key(),
                model=self.ai_model,
                temperature=self.ai_temperature,
                max_tokens=self.ai_max_tokens,
                system_prompt=self.ai_system_prompt,
                context_window=self.ai_context_window,
            ),
            webhook=WebhookConfig(url=self.webhook_base_url or "", secret=self.webhook_secret),
            logging=LoggingConfig(level=self.log_level.lower(), format=self.log_format),
        )

    def get_capability_summary(self) -> Dict[str, Any]:
        """Which providers have credentials configured"""
        return {
            "twilio_available": bool(self.twilio_account_sid and self.twilio_auth_token),
            "whatsapp_number_configured": bool(self.twilio_whatsapp_number or self.twilio_phone_number),
            "openai_available": bool(self.openai_api_key),
            "claude_available": bool(self.anthropic_api_key),
            "facebook_available": bool(self.facebook_page_id and self.facebook_access_token),
            "instagram_available": bool(self.instagram_account_id and self.instagram_access_token),
            "ai_provider": self.ai_provider,
            "ai_key_configured": bool(self._ai_api_key()),
            "api_auth_enabled": bool(self.api_token),
            "environment": self.environment,
        }

    def log_configuration_status(self) -> None:
        capabilities = self.get_capability_summary()
        logger.info("🔧 Configuration Status:")
        logger.info(f"  Environment: {self.environment}")
        logger.info(f"  🧠 AI Provider: {self.ai_provider} ({self.ai_model})")
        if not capabilities["ai_key_configured"]:
            logger.warning(f"  ⚠️ No API key for AI provider {self.ai_provider}")
        if (self.whatsapp_enabled or self.voice_enabled) and not capabilities["twilio_available"]:
            logger.warning("  ⚠️ Twilio channels enabled but credentials are missing")
        if self.social_enabled and not (capabilities["facebook_available"] or capabilities["instagram_available"]):
            logger.warning("  ⚠️ Social channel enabled but no Meta platform is configured")


settings = Settings()

__all__ = ["settings", "Settings"]
