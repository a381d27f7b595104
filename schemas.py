"""
WebSocket 訊息格式（Pydantic）

每個 client -> server 訊息都有 "type" 欄位（事件名稱），
其餘欄位使用 camelCase，例如：

    {"type": "book-table", "roomId": "ABCDEF", "tableSize": 2}

ClientMessage 是以 "type" 為 discriminator 的 tagged union，
relay handler 用它做完整（exhaustive）的分派。
"""
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel

from core.order_ledger import OrderStatus
from core.session_store import PlayerRole


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Vector3(WireModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class Rotation(WireModel):
    x: float = 0.0
    y: float = 0.0


class OrderLineIn(WireModel):
    # 前端送的欄位是 "dish"，ledger 內部叫 name
    name: str = Field(validation_alias=AliasChoices("dish", "name"))
    quantity: int = Field(default=1, ge=1)
    price: float = Field(ge=0)


# ============ Client -> Server ============

class RoomMessage(WireModel):
    room_id: str = Field(min_length=1, max_length=64)


class JoinRoom(RoomMessage):
    type: Literal["join-room"]
    role: PlayerRole
    username: str = Field(default="Player", max_length=64)


class PlayerMove(RoomMessage):
    type: Literal["player-move"]
    position: Vector3
    rotation: Rotation = Field(default_factory=Rotation)


class PlayerAction(RoomMessage):
    type: Literal["player-action"]
    action: str
    data: Any = None


class BookTable(RoomMessage):
    type: Literal["book-table"]
    table_size: int = Field(ge=1)
    request_id: Optional[str] = None


class PlaceOrder(RoomMessage):
    """items[] 或舊版的單一 dish + price 兩種格式擇一"""
    type: Literal["place-order"]
    table_id: int
    items: Optional[List[OrderLineIn]] = None
    dish: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    request_id: Optional[str] = None

    @model_validator(mode="after")
    def _normalize_items(self):
        if not self.items:
            if self.dish is None or self.price is None:
                raise ValueError("place-order needs items[] or dish + price")
            self.items = [OrderLineIn(name=self.dish, quantity=1, price=self.price)]
        return self


class OrderStatusUpdate(RoomMessage):
    type: Literal["order-status-update"]
    order_id: str
    status: OrderStatus


class SubmitRating(RoomMessage):
    type: Literal["submit-rating"]
    rating: int = Field(ge=1, le=5)


class TutorialCompleted(RoomMessage):
    type: Literal["tutorial-completed"]


class VisitorSatDown(RoomMessage):
    type: Literal["visitor-sat-down"]
    table_id: Optional[int] = None


class MenuRequested(RoomMessage):
    type: Literal["menu-requested"]
    table_id: Optional[int] = None


class OrderCompleted(RoomMessage):
    type: Literal["order-completed"]
    order_id: str
    completion_time: float = Field(ge=0)
    was_on_time: bool


class EndSession(RoomMessage):
    type: Literal["end-session"]


class Ping(WireModel):
    type: Literal["ping"]
    sent_at: float


CLIENT_MESSAGE_TYPES = (
    JoinRoom,
    PlayerMove,
    PlayerAction,
    BookTable,
    PlaceOrder,
    OrderStatusUpdate,
    SubmitRating,
    TutorialCompleted,
    VisitorSatDown,
    MenuRequested,
    OrderCompleted,
    EndSession,
    Ping,
)

ClientMessage = Annotated[Union[CLIENT_MESSAGE_TYPES], Field(discriminator="type")]

client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(raw: Any):
    """把 JSON 物件轉成對應的訊息類別；格式錯誤時拋出 pydantic.ValidationError"""
    return client_message_adapter.validate_python(raw)


# ============ REST responses ============

class RoomCodeResponse(BaseModel):
    room_id: str


class DialogueOut(BaseModel):
    text: str
    success: bool
    error: Optional[str] = None


class SessionRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    room_id: str
    players: List[dict]
    orders: List[dict]
    ratings: List[int]
    served_orders: int
    revenue: float
    refunds: float
    chef_penalty: int
    completed_at: datetime
