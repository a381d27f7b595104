"""
Dialogue API Endpoints

NPC 對白；未設定 Gemini 金鑰時回傳固定台詞
"""
from typing import Literal

from fastapi import APIRouter, Query, Request

from schemas import DialogueOut

router = APIRouter(prefix="/api/dialogue", tags=["dialogue"])


@router.get("/{npc_type}", response_model=DialogueOut)
async def get_dialogue(
    npc_type: Literal["waiter", "receptionist"],
    request: Request,
    role: Literal["visitor", "chef"] = Query("visitor"),
    context: str = Query("", max_length=500),
):
    provider = request.app.state.dialogue
    response = await provider.generate(npc_type, role, context)
    return DialogueOut(text=response.text, success=response.success, error=response.error)
