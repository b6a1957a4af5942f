from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from word_oracle.agents.context import PersonaContext


PERSONA_PROMPT = "oracle_persona.txt"
TURN_PROMPT = "oracle_turn.txt"


class PromptLoadError(RuntimeError):
    pass


def project_root() -> Path:
    # word_oracle/prompts.py -> word_oracle/ -> project root
    return Path(__file__).resolve().parents[1]


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """Read `prompts/<name>` from the project root. Cached; prompts don't change at runtime."""

    path = project_root() / "prompts" / name
    try:
        return path.read_text(encoding="utf-8").strip() + "\n"
    except FileNotFoundError as e:
        raise PromptLoadError(f"Prompt not found: {path}") from e


def make_persona_context(*, system_prefix: str = "") -> PersonaContext:
    """The oracle persona, optionally preceded by extra system-level instructions."""

    parts = [system_prefix.strip(), load_prompt(PERSONA_PROMPT).strip()]
    return PersonaContext(system_prompt="\n\n".join(p for p in parts if p))


def render_turn_prompt(*, secret: str, player_text: str) -> str:
    return load_prompt(TURN_PROMPT).format(secret=secret, player_text=player_text).strip()
