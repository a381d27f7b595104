"""
NPC 對話服務

職責：
1. 為 waiter / receptionist 產生一兩句對白
2. 有設定 Gemini 金鑰時呼叫 generateContent，否則使用固定台詞
3. 任何失敗都退回固定台詞（success=False），不讓對話中斷遊戲
"""
from dataclasses import dataclass
from typing import Optional, Protocol
import logging

import httpx

logger = logging.getLogger(__name__)

PLACEHOLDER_API_KEY = "your_gemini_api_key_here"
DEFAULT_LINE = "Hello there!"

FALLBACK_LINES = {
    ("waiter", "visitor"): "Welcome! What can I get for you today?",
    ("waiter", "chef"): "Ready for the next order, chef!",
    ("receptionist", "visitor"): "Welcome to DineVerse! Please follow me.",
    ("receptionist", "chef"): "Good luck in the kitchen today!",
}

SCENE_HINTS = {
    ("waiter", "visitor"): "The customer is looking to order food or ask about the menu.",
    ("waiter", "chef"): "You're communicating with the chef about orders or kitchen needs.",
    ("receptionist", "visitor"): "The customer is checking in or asking about seating.",
    ("receptionist", "chef"): "You're greeting the chef or discussing restaurant operations.",
}


@dataclass
class DialogueResponse:
    text: str
    success: bool
    error: Optional[str] = None


class DialogueProvider(Protocol):
    async def generate(self, npc_type: str, player_role: str, context: str = "") -> DialogueResponse:
        ...


def fallback_line(npc_type: str, player_role: str) -> str:
    return FALLBACK_LINES.get((npc_type, player_role), DEFAULT_LINE)


def build_prompt(npc_type: str, player_role: str, context: str = "") -> str:
    """
    組出送給模型的 prompt

    有 context 時直接附上；沒有時使用角色組合對應的場景描述
    """
    base = (
        f"You are a {npc_type} in a virtual restaurant game called DineVerse. "
        f"A {player_role} is interacting with you. Generate a short, friendly, and "
        f"contextually appropriate response (1-2 sentences max). Keep it casual and game-appropriate."
    )
    if context:
        return f"{base} Context: {context}"
    hint = SCENE_HINTS.get((npc_type, player_role), "")
    return f"{base} {hint}".rstrip()


class StaticDialogue:
    """不需要網路的固定台詞"""

    async def generate(self, npc_type: str, player_role: str, context: str = "") -> DialogueResponse:
        return DialogueResponse(text=fallback_line(npc_type, player_role), success=True)


class GeminiDialogue:
    """Gemini generateContent；失敗時退回固定台詞"""

    def __init__(
        self,
        api_key: str,
        url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def generate(self, npc_type: str, player_role: str, context: str = "") -> DialogueResponse:
        body = {
            "contents": [{"parts": [{"text": build_prompt(npc_type, player_role, context)}]}],
            "generationConfig": {
                "temperature": 0.7,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": 100,
            },
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._url, params={"key": self._api_key}, json=body)
                resp.raise_for_status()
                data = resp.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"].strip()
            if not text:
                raise ValueError("Empty response from Gemini API")
            return DialogueResponse(text=text, success=True)
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Gemini dialogue failed for {npc_type}/{player_role}: {e}")
            return DialogueResponse(
                text=fallback_line(npc_type, player_role),
                success=False,
                error=str(e),
            )


def build_dialogue_provider(settings) -> DialogueProvider:
    """只有設定了真正的金鑰時才使用 Gemini"""
    api_key = settings.gemini_api_key
    if api_key and api_key != PLACEHOLDER_API_KEY:
        logger.info("Using Gemini dialogue provider")
        return GeminiDialogue(api_key, settings.gemini_url, timeout=settings.dialogue_timeout)
    return StaticDialogue()
