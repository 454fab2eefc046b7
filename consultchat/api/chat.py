"""
Chat API route.

- POST /api/chat: one gated chat turn against the plan persona
"""
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from consultchat.api.deps import get_chat, get_current_user
from consultchat.core.auth import CurrentUser
from consultchat.features.chat.provider import Content, Part
from consultchat.features.chat.service import ChatProxy

router = APIRouter(prefix="/chat", tags=["chat"])


class InlineData(BaseModel):
    mimeType: Optional[str] = None
    data: str


class MessagePart(BaseModel):
    text: Optional[str] = None
    inlineData: Optional[InlineData] = None

    def to_part(self) -> Part:
        if self.inlineData is not None:
            return Part(mime_type=self.inlineData.mimeType, data=self.inlineData.data)
        return Part(text=self.text)


class HistoryTurn(BaseModel):
    role: Literal["user", "model"]
    text: str = ""

    def to_content(self) -> Content:
        return Content(role=self.role, parts=[Part(text=self.text)])


class ChatRequest(BaseModel):
    plan: Optional[str] = None
    message: Optional[str] = None
    messageParts: Optional[List[MessagePart]] = None
    history: List[HistoryTurn] = Field(default_factory=list)


@router.post("")
async def chat(
    body: ChatRequest,
    user: CurrentUser = Depends(get_current_user),
    proxy: ChatProxy = Depends(get_chat),
):
    """
    Answer one chat turn.

    Returns:
        {"message", "totalAnswers", "freeAnswersUsed", "remainingFree",
         "limit", "hasActivePlan", "plan", "status"}

    Errors:
        400: empty message, bad attachment, attachment too large
        401: not signed in
        403: free quota used up (body carries limitExceeded and usage)
        500: missing persona prompt or model failure
    """
    answer = await proxy.answer(
        user.id,
        plan=body.plan,
        message=body.message,
        message_parts=[part.to_part() for part in body.messageParts] if body.messageParts else None,
        history=[turn.to_content() for turn in body.history if turn.text],
    )
    return answer.to_response()
