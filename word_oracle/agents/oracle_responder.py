from __future__ import annotations

import json
from typing import Protocol

from word_oracle.agents.base import Agent, ReplySchema
from word_oracle.agents.context import RoundContext, compose_context
from word_oracle.prompts import make_persona_context, render_turn_prompt


ORACLE_REPLY_SCHEMA = ReplySchema(
    name="oracle_reply",
    schema={
        "type": "object",
        "properties": {
            "response": {
                "type": "string",
                "description": "Two or three in-character sentences: a cryptic hint or a mysterious 'wrong'.",
                "minLength": 1,
                "maxLength": 1000,
            }
        },
        "required": ["response"],
        "additionalProperties": False,
    },
)


class Responder(Protocol):
    async def generate(self, *, secret: str, player_text: str, difficulty: str = "") -> str:  # pragma: no cover
        ...


def parse_reply(content: str) -> str:
    """Pull `response` out of a structured reply; models that ignore the schema get their raw text used."""

    try:
        parsed = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return content.strip()

    if isinstance(parsed, dict):
        resp = parsed.get("response")
        if isinstance(resp, str) and resp.strip():
            return resp.strip()
    return content.strip()


class AgentResponder:
    """Responder backed by an LLM agent.

    Holds no conversation memory: each call gets the persona, the current secret,
    and the player's text, nothing else.
    """

    def __init__(self, agent: Agent) -> None:
        self.agent = agent

    async def generate(self, *, secret: str, player_text: str, difficulty: str = "") -> str:
        ctx = compose_context(
            persona=make_persona_context(),
            round_ctx=RoundContext(secret=secret, difficulty=difficulty),
        )
        prompt = render_turn_prompt(secret=secret, player_text=player_text)
        reply = await self.agent.reply(prompt=prompt, ctx=ctx, schema=ORACLE_REPLY_SCHEMA)
        return parse_reply(reply.text)
