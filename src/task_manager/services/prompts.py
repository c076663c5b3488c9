from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml


PROMPTS_DIR = Path(__file__).resolve().parents[1] / "prompts"


@dataclass(frozen=True)
class Prompt:
    name: str
    user: str

    def render(self, **values: str) -> str:
        # Values are substituted as-is; braces inside them are not re-parsed.
        return self.user.format(**values)


@lru_cache
def load_prompt(name: str) -> Prompt:
    """Load a single-turn prompt from ``prompts/<name>.yaml``.

    Files hold a list of ``{role, content}`` messages using ``{{var}}`` placeholders.
    """
    path = PROMPTS_DIR / f"{name}.yaml"
    with path.open(encoding="utf-8") as f:
        messages: list[dict[str, str]] = yaml.safe_load(f)

    for msg in messages:
        if msg["role"] == "user":
            return Prompt(name=name, user=msg["content"].replace("{{", "{").replace("}}", "}"))

    raise ValueError(f"Prompt {name!r} has no user message")
