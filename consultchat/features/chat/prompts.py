"""
System prompts per plan persona.

The persona used for a chat turn is chosen by the request's plan and is
independent of the user's billing plan, so any persona can be previewed.
"""
from typing import Dict, Optional

from consultchat.core.config import parse_prompts
from consultchat.core.errors import ConfigurationError


class PromptBook:
    def __init__(self, raw_json: Optional[str]):
        self._raw_json = raw_json

    def system_prompt(self, plan: str) -> str:
        """Return the system instruction for ``plan`` (case-insensitive)."""
        try:
            prompts: Dict[str, dict] = parse_prompts(self._raw_json)
        except ValueError as exc:
            raise ConfigurationError("The assistant is not configured. Please contact support.") from exc

        key = plan.lower()
        entry = prompts.get(key)
        prompt = entry.get("systemPrompt") if isinstance(entry, dict) else None
        if not prompt:
            raise ConfigurationError(f"No system prompt is configured for plan '{key}'. Please contact support.")
        return prompt
