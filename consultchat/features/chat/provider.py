"""
LLM provider protocol.

A request is a system instruction plus ordered role-tagged turns; each turn
is a list of parts (text, or inline base64 data with a mime type).
"""
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Protocol

Role = Literal["user", "model"]


@dataclass(frozen=True)
class Part:
    text: Optional[str] = None
    mime_type: Optional[str] = None
    data: Optional[str] = None  # base64

    @property
    def is_inline(self) -> bool:
        return self.data is not None

    def to_wire(self) -> dict:
        if self.is_inline:
            return {"inlineData": {"mimeType": self.mime_type, "data": self.data}}
        return {"text": self.text or ""}


@dataclass(frozen=True)
class Content:
    role: Role
    parts: List[Part]

    def to_wire(self) -> dict:
        return {"role": self.role, "parts": [part.to_wire() for part in self.parts]}


@dataclass(frozen=True)
class GenerationConfig:
    temperature: float = 0.7
    max_output_tokens: int = 4000


@dataclass(frozen=True)
class Candidate:
    texts: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class GenerationResult:
    candidates: List[Candidate] = field(default_factory=list)


class LLMProvider(Protocol):
    async def generate_content(
        self,
        system_instruction: str,
        contents: List[Content],
        config: GenerationConfig,
    ) -> GenerationResult:
        """
        Run one generation.

        Raises:
            LLMProviderError: on HTTP failure, timeout or transport error
        """
        ...


class LLMProviderError(Exception):
    """Provider call failed; status_code/body are kept for diagnostics only."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
