from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from word_oracle.agents.context import RenderedContext


@dataclass(frozen=True, slots=True)
class ReplySchema:
    """JSON Schema the model's reply must conform to (OpenAI-style structured output)."""

    name: str
    schema: dict[str, Any]
    strict: bool = True

    def response_format(self) -> dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {"name": self.name, "schema": self.schema, "strict": self.strict},
        }


@dataclass(frozen=True, slots=True)
class AgentReply:
    text: str
    model: str | None = None
    structured: bool = False


class Agent(Protocol):
    name: str

    async def reply(self, *, prompt: str, ctx: RenderedContext, schema: ReplySchema | None = None) -> AgentReply:  # pragma: no cover
        ...
