"""
LLM Clients

Model access for the agents. Two backends share one interface:
- AnthropicLLMClient: Claude API directly, or an Anthropic-native proxy
- OpenAIProxyLLMClient: OpenAI-compatible proxy; requests and responses are
  converted to and from the Claude message format

Agents only ever see Claude-shaped responses (blocks with .type "text" or
"tool_use").
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import anthropic
from openai import AsyncOpenAI

import code_gen_config as config

logger = logging.getLogger(__name__)


# ============================================
# Model Binding
# ============================================

# Model max_tokens limits
MODEL_MAX_TOKENS = {
    "claude-haiku-4-5-20251001": 16384,
    "claude-3-5-haiku-20241022": 8192,
    "claude-sonnet-4-5-20250929": 16384,
    "claude-sonnet-4-20250514": 16384,
    "claude-3-5-sonnet-20241022": 8192,
    "default": 8192,
}


@dataclass(frozen=True)
class ModelBinding:
    """Which model an agent talks to and how much it may write per turn"""
    model: str
    max_tokens: int = 8192

    def effective_max_tokens(self) -> int:
        limit = MODEL_MAX_TOKENS.get(self.model)
        if limit is not None and self.max_tokens > limit:
            return limit
        return self.max_tokens


# ============================================
# Normalized Response Types
# ============================================

class ContentBlock:
    """Claude-style content block"""
    def __init__(self, block_type: str, **kwargs):
        self.type = block_type
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __repr__(self):
        return f"ContentBlock({self.__dict__!r})"


class ModelResponse:
    """Claude-style response built from another provider's output"""
    def __init__(self, content: List[ContentBlock], stop_reason: Optional[str]):
        self.content = content
        self.stop_reason = stop_reason


# ============================================
# Clients
# ============================================

class LLMClient(ABC):
    """Interface every model backend implements"""

    @abstractmethod
    async def complete(
        self,
        binding: ModelBinding,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Any:
        """
        Run one model call.

        Args:
            binding: Model and token limit
            system_prompt: System prompt
            messages: Conversation in Claude API format
            tools: Tool definitions in Claude API format

        Returns:
            Response with `.content` (blocks) and `.stop_reason`
        """


class AnthropicLLMClient(LLMClient):

    def __init__(self, api_key: str, base_url: Optional[str] = None, model_override: Optional[str] = None):
        self.model_override = model_override
        client_kwargs = {"api_key": api_key, "timeout": 120.0}
        if base_url:
            client_kwargs["base_url"] = base_url
        self.client = anthropic.AsyncAnthropic(**client_kwargs)

    async def complete(self, binding, system_prompt, messages, tools=None):
        kwargs = {
            "model": self.model_override or binding.model,
            "max_tokens": binding.effective_max_tokens(),
            "system": system_prompt,
            "messages": messages,
        }
        if tools:
            kwargs["tools"] = tools
        return await self.client.messages.create(**kwargs)


class OpenAIProxyLLMClient(LLMClient):

    def __init__(self, api_key: str, base_url: str, model_override: Optional[str] = None):
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=120.0)
        self.model_override = model_override

    async def complete(self, binding, system_prompt, messages, tools=None):
        openai_messages = [{"role": "system", "content": system_prompt}]
        for msg in messages:
            openai_messages.extend(convert_message_to_openai(msg))

        kwargs = {
            "model": self.model_override or binding.model,
            "max_tokens": binding.effective_max_tokens(),
            "messages": openai_messages,
        }
        if tools:
            kwargs["tools"] = convert_tools_to_openai(tools)

        response = await self.client.chat.completions.create(**kwargs)
        return convert_openai_response(response)


# ============================================
# Format Conversion (Claude <-> OpenAI)
# ============================================

def convert_message_to_openai(msg: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Convert one Claude message into one or more OpenAI messages"""
    role = msg.get("role")
    content = msg.get("content")

    if isinstance(content, str):
        return [{"role": role, "content": content}]

    if role == "assistant":
        text_parts = []
        tool_calls = []
        for block in content:
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_calls.append({
                    "id": block.get("id"),
                    "type": "function",
                    "function": {
                        "name": block.get("name"),
                        "arguments": json.dumps(block.get("input", {})),
                    },
                })
        result = {"role": "assistant", "content": " ".join(text_parts) if text_parts else None}
        if tool_calls:
            result["tool_calls"] = tool_calls
        return [result]

    # user content: each tool_result becomes its own "tool" message
    converted = []
    text_parts = []
    for block in content:
        if block.get("type") == "tool_result":
            converted.append({
                "role": "tool",
                "tool_call_id": block.get("tool_use_id"),
                "content": block.get("content", ""),
            })
        elif block.get("type") == "text":
            text_parts.append(block.get("text", ""))
    if text_parts:
        converted.append({"role": "user", "content": " ".join(text_parts)})
    return converted


def convert_tools_to_openai(tools: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.get("name"),
                "description": tool.get("description", ""),
                "parameters": tool.get("input_schema", {}),
            },
        }
        for tool in tools
    ]


def convert_openai_response(response) -> ModelResponse:
    """Convert an OpenAI chat completion to a Claude-like response"""
    choice = response.choices[0] if response.choices else None
    if not choice:
        raise ValueError("No response from OpenAI API")

    message = choice.message
    content = []

    if message.content:
        content.append(ContentBlock("text", text=message.content))

    for tool_call in message.tool_calls or []:
        try:
            input_data = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError:
            logger.warning(f"[LLM] Unparseable arguments for {tool_call.function.name}")
            input_data = {}
        content.append(ContentBlock(
            "tool_use",
            id=tool_call.id,
            name=tool_call.function.name,
            input=input_data,
        ))

    return ModelResponse(content=content, stop_reason=choice.finish_reason)


# ============================================
# Factory
# ============================================

def create_llm_client() -> LLMClient:
    """
    Pick the model backend from configuration.

    Proxy URLs ending in /messages speak the Anthropic format; any other
    proxy URL is treated as OpenAI-compatible.
    """
    if config.USE_CLAUDE_PROXY:
        if not config.CLAUDE_PROXY_API_KEY:
            raise ValueError("CLAUDE_PROXY_API_KEY environment variable not set")

        proxy_base_url = config.CLAUDE_PROXY_BASE_URL
        if "/messages" in proxy_base_url.lower():
            base_url = re.sub(r"/(v1/)?messages/?$", "", proxy_base_url, flags=re.IGNORECASE)
            logger.info(f"[LLM] Using Anthropic-native proxy: {base_url}")
            return AnthropicLLMClient(
                config.CLAUDE_PROXY_API_KEY,
                base_url=base_url,
                model_override=config.CLAUDE_PROXY_MODEL or None,
            )

        logger.info(f"[LLM] Using OpenAI-compatible proxy: {proxy_base_url}")
        return OpenAIProxyLLMClient(
            config.CLAUDE_PROXY_API_KEY,
            proxy_base_url,
            model_override=config.CLAUDE_PROXY_MODEL or None,
        )

    if not config.ANTHROPIC_API_KEY:
        raise ValueError("ANTHROPIC_API_KEY environment variable not set")

    logger.info("[LLM] Using direct Anthropic API")
    return AnthropicLLMClient(config.ANTHROPIC_API_KEY)
