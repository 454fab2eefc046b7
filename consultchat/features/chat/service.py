"""
Chat proxy: shapes a Gemini request for one chat turn.

Flow per turn:
    validate input -> resolve persona prompt -> quota gate -> generate -> record usage
Usage is recorded only after a successful generation.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence

from consultchat.core.errors import (
    PayloadTooLargeError,
    QuotaExceededError,
    UpstreamError,
    ValidationError,
)
from consultchat.core.logging import log_event
from consultchat.features.chat.prompts import PromptBook
from consultchat.features.chat.provider import (
    Content,
    GenerationConfig,
    GenerationResult,
    LLMProvider,
    LLMProviderError,
    Part,
)
from consultchat.features.usage.gate import QuotaDecision, QuotaGate

DEFAULT_PLAN = "blue"
NO_ANSWER_TEXT = "Sorry, no answer could be generated. Please try rephrasing your question."
QUOTA_EXCEEDED_MESSAGE = "You have used all free answers. Please choose a plan to continue."


@dataclass(frozen=True)
class ChatAnswer:
    message: str
    usage: QuotaDecision

    def to_response(self) -> dict:
        return {"message": self.message, **self.usage.usage_payload()}


def estimate_decoded_bytes(data: str) -> int:
    """Byte size of base64 ``data`` once decoded, without decoding it."""
    stripped = "".join(data.split())
    padding = len(stripped) - len(stripped.rstrip("="))
    return max(len(stripped) * 3 // 4 - padding, 0)


def build_user_parts(
    message: Optional[str],
    message_parts: Optional[Sequence[Part]],
    max_attachment_bytes: int,
) -> List[Part]:
    """
    Parts of the new user turn.

    ``message_parts`` wins when it has any content; otherwise ``message``
    becomes a single text part. At most one inline attachment is accepted.
    """
    parts = [p for p in (message_parts or []) if p.is_inline or (p.text and p.text.strip())]
    if not parts:
        text = (message or "").strip()
        parts = [Part(text=text)] if text else []

    if not parts:
        raise ValidationError("Please enter a message: 'message' is empty.")

    inline = [p for p in parts if p.is_inline]
    if len(inline) > 1:
        raise ValidationError("Only one attachment can be sent per message: 'messageParts' has more than one.")
    for part in inline:
        if not part.mime_type:
            raise ValidationError("'messageParts.inlineData.mimeType' is required for attachments.")
        if estimate_decoded_bytes(part.data) > max_attachment_bytes:
            limit_mb = max_attachment_bytes // (1024 * 1024)
            raise PayloadTooLargeError(f"The attachment is too large. Files up to {limit_mb}MB are supported.")
    return parts


def extract_text(result: GenerationResult) -> str:
    """Concatenate the text parts of the first candidate, or a fixed fallback."""
    for candidate in result.candidates:
        text = "".join(candidate.texts)
        if text.strip():
            return text
    return NO_ANSWER_TEXT


class ChatProxy:
    def __init__(
        self,
        gate: QuotaGate,
        llm: LLMProvider,
        prompts: PromptBook,
        generation: GenerationConfig,
        max_attachment_bytes: int = 8 * 1024 * 1024,
    ):
        self.gate = gate
        self.llm = llm
        self.prompts = prompts
        self.generation = generation
        self.max_attachment_bytes = max_attachment_bytes

    async def answer(
        self,
        user_id: str,
        *,
        plan: Optional[str],
        message: Optional[str],
        message_parts: Optional[Sequence[Part]] = None,
        history: Optional[Sequence[Content]] = None,
    ) -> ChatAnswer:
        persona = (plan or DEFAULT_PLAN).strip().lower() or DEFAULT_PLAN
        parts = build_user_parts(message, message_parts, self.max_attachment_bytes)
        system_prompt = self.prompts.system_prompt(persona)

        decision = await self.gate.check(user_id)
        if not decision.allow:
            log_event(
                "info",
                "quota.denied",
                user_id=user_id,
                event_type="quota.denied",
                extra={"free_answers_used": decision.free_answers_used, "limit": decision.limit},
            )
            raise QuotaExceededError(
                QUOTA_EXCEEDED_MESSAGE,
                extra={"limitExceeded": True, **decision.usage_payload(), "remainingFree": 0},
            )

        contents = list(history or [])
        contents.append(Content(role="user", parts=parts))
        try:
            result = await self.llm.generate_content(system_prompt, contents, self.generation)
        except LLMProviderError as exc:
            raise UpstreamError(
                "The assistant could not answer right now. Please try again later.",
                detail=f"status={exc.status_code} body={exc.body!r} error={exc}",
            ) from exc

        text = extract_text(result)
        usage = await self.gate.record_success(user_id, decision)
        log_event(
            "info",
            "chat.answered",
            user_id=user_id,
            event_type="chat.answered",
            extra={"persona": persona, "total_answers": usage.total_answers, "paid": usage.has_active_plan},
        )
        return ChatAnswer(message=text, usage=usage)
