"""Inbound request models (validated at the HTTP boundary)."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from copilot_agent.types.tool import ToolSpec

__all__ = ["AgentRequest", "ContextBlock", "Credentials", "OAuthCredential", "ProviderSelection"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ContextBlock(_CamelModel):
    """Extra context the editor attaches to a message (appended to the system prompt)."""

    type: str
    content: str


class OAuthCredential(_CamelModel):
    access_token: str = ""
    account_id: str = ""
    name: str = ""


class Credentials(_CamelModel):
    oauth: dict[str, OAuthCredential] = Field(default_factory=dict)
    api_keys: list[str] = Field(default_factory=list)

    def single_oauth_provider(self) -> Optional[str]:
        """The only OAuth association, or None when there are zero or several."""
        if len(self.oauth) == 1:
            return next(iter(self.oauth))
        return None


class ProviderSelection(_CamelModel):
    provider: str = "anthropic"
    model: Optional[str] = None


class AgentRequest(_CamelModel):
    """One user message plus everything needed to answer it."""

    message: str
    workflow_id: str = ""
    user_id: str = ""
    conversation_history: list[dict[str, Any]] = Field(default_factory=list)
    tools: list[ToolSpec] = Field(default_factory=list)
    base_tools: list[ToolSpec] = Field(default_factory=list)
    system_prompt_cache: Optional[str] = None
    user_name: Optional[str] = None
    context: list[ContextBlock] = Field(default_factory=list)
    credentials: Credentials = Field(default_factory=Credentials)
    model: Optional[str] = None
    provider: Optional[ProviderSelection | str] = None

    @property
    def provider_name(self) -> Optional[str]:
        if isinstance(self.provider, ProviderSelection):
            return self.provider.provider
        return self.provider

    @property
    def model_name(self) -> Optional[str]:
        if self.model:
            return self.model
        if isinstance(self.provider, ProviderSelection):
            return self.provider.model
        return None
