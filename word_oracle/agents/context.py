from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PersonaContext:
    """Who the oracle is and the rules it plays by. Same for every round."""

    system_prompt: str


@dataclass(frozen=True, slots=True)
class RoundContext:
    """Per-round overlay: the word being guarded and its tier."""

    secret: str
    difficulty: str = ""

    def render(self) -> str:
        lines = ["ROUND CONTEXT:", f'- secret_word: "{self.secret}"']
        if self.difficulty:
            lines.append(f"- difficulty: {self.difficulty}")
        lines.append(f'- You must NEVER write "{self.secret}" or any word containing it.')
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class RenderedContext:
    """System prompt handed to the model for a single reply."""

    system_prompt: str


def compose_context(*, persona: PersonaContext, round_ctx: RoundContext) -> RenderedContext:
    parts = [persona.system_prompt.strip(), round_ctx.render()]
    return RenderedContext(system_prompt="\n\n".join(p for p in parts if p.strip()))
