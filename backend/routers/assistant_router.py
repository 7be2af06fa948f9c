"""
Assistant Router - Clara, the provider-facing chat assistant

Provides clinical decision support in the review dashboard:
- Answering pediatric triage questions
- Summarizing guidance for a pending review
- Workflow help for the dashboard itself
"""

from fastapi import APIRouter, HTTPException
from openai import OpenAI

from config import OPENAI_API_KEY, OPENAI_MODEL, OPENAI_MAX_TOKENS
from models import ChatRequest, ChatResponse
from structured_logging import get_logger

router = APIRouter(tags=["Assistant"])
logger = get_logger(__name__)

# Keep the last N turns of history for context
MAX_HISTORY_TURNS = 10

SYSTEM_PROMPT = """You are Clara, a clinical assistant embedded in a pediatric triage review dashboard.
Providers use the dashboard to review AI triage conversations with parents and to escalate concerns.

GUIDELINES:
1. Answer concisely; providers are reviewing a queue
2. Use pediatric dosing and age-appropriate reference ranges
3. Flag red-flag symptoms that warrant escalation
4. Never present an answer as a definitive diagnosis
5. If a question is outside pediatrics or the review workflow, say so briefly
"""


def get_openai_client():
    """OpenAI client, or None when no API key is configured."""
    if not OPENAI_API_KEY:
        return None
    return OpenAI(api_key=OPENAI_API_KEY)


def build_messages(request: ChatRequest) -> list:
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    for turn in request.history[-MAX_HISTORY_TURNS:]:
        messages.append({"role": turn.role, "content": turn.content})
    messages.append({"role": "user", "content": request.message})
    return messages


@router.get("/api/clara/status")
def get_assistant_status():
    configured = bool(OPENAI_API_KEY)
    return {
        "available": configured,
        "model": OPENAI_MODEL if configured else None,
    }


@router.post("/api/clara/chat", response_model=ChatResponse)
def chat_with_clara(request: ChatRequest):
    client = get_openai_client()
    if client is None:
        raise HTTPException(status_code=503, detail="Assistant is not configured")

    try:
        completion = client.chat.completions.create(
            model=OPENAI_MODEL,
            messages=build_messages(request),
            max_tokens=OPENAI_MAX_TOKENS,
            temperature=0.3,
        )
    except Exception as e:
        logger.error("Assistant completion failed", extra={"error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=502, detail="Assistant request failed")

    reply = completion.choices[0].message.content or ""
    if completion.usage is not None:
        logger.info("Assistant reply generated", extra={"model": OPENAI_MODEL,
                                                        "total_tokens": completion.usage.total_tokens})
    return ChatResponse(response=reply, model=OPENAI_MODEL)
