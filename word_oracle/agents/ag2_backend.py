from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any

from autogen import ConversableAgent, LLMConfig

from word_oracle.agents.base import AgentReply, ReplySchema
from word_oracle.agents.context import RenderedContext


DEFAULT_MODEL = "gpt-4o-mini"


@dataclass(frozen=True, slots=True)
class OracleModelSettings:
    """Connection settings for an OpenAI-compatible chat endpoint.

    Environment variables:
    - OPENAI_MODEL
    - OPENAI_API_KEY (optional if OPENAI_BASE_URL is set)
    - OPENAI_BASE_URL (for OpenAI-compatible servers like Ollama, e.g. http://127.0.0.1:11434/v1)
    - ORACLE_MAX_TOKENS (replies are two or three sentences; default 150)
    """

    model: str
    base_url: str | None
    api_key: str | None
    max_tokens: int

    @classmethod
    def from_env(cls, *, default_model: str = DEFAULT_MODEL) -> OracleModelSettings:
        return cls(
            model=os.environ.get("OPENAI_MODEL", default_model),
            base_url=os.environ.get("OPENAI_BASE_URL"),
            api_key=os.environ.get("OPENAI_API_KEY"),
            max_tokens=int(os.environ.get("ORACLE_MAX_TOKENS", "150")),
        )

    def llm_config(self) -> LLMConfig:
        # Many OpenAI-compatible servers ignore the key but the client requires one.
        api_key = self.api_key or ("ollama" if self.base_url else None)
        if not api_key:
            raise RuntimeError(
                "Set OPENAI_API_KEY for hosted OpenAI, or set OPENAI_BASE_URL for a local OpenAI-compatible server"
            )

        entry: dict[str, Any] = {"model": self.model, "api_key": api_key, "max_tokens": self.max_tokens}
        if self.base_url:
            entry["base_url"] = self.base_url
        return LLMConfig(config_list=[entry])


def _last_message_text(messages: object) -> str:
    if not isinstance(messages, list):
        return ""

    for msg in reversed(messages):
        if isinstance(msg, dict):
            content = msg.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return ""


@dataclass(slots=True)
class Ag2OracleAgent:
    """Single-shot AG2 agent: one system prompt, one player turn, one reply.

    A fresh `ConversableAgent` is built per call so no chat history carries over
    between players or rounds.
    """

    name: str
    settings: OracleModelSettings

    def _reply_sync(self, *, prompt: str, ctx: RenderedContext, schema: ReplySchema | None) -> str:
        agent = ConversableAgent(
            name=self.name,
            system_message=ctx.system_prompt,
            llm_config=self.settings.llm_config(),
            human_input_mode="NEVER",
        )

        # AG2 forwards unknown kwargs through to the OpenAI client.
        extra: dict[str, Any] = {}
        if schema is not None:
            extra["response_format"] = schema.response_format()

        result = agent.run(message=prompt, max_turns=1, **extra)
        result.process()

        text = _last_message_text(list(result.messages))
        if not text and isinstance(result.summary, str):
            text = result.summary.strip()
        return text

    async def reply(self, *, prompt: str, ctx: RenderedContext, schema: ReplySchema | None = None) -> AgentReply:
        # The AG2 run is blocking.
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, lambda: self._reply_sync(prompt=prompt, ctx=ctx, schema=schema))
        return AgentReply(text=text, model=self.settings.model, structured=schema is not None)


def create_oracle_agent(*, name: str = "zoltar") -> Ag2OracleAgent:
    return Ag2OracleAgent(name=name, settings=OracleModelSettings.from_env())
