"""
Relay Protocol Handler：visitor 與 chef 之間的權威仲裁者

職責：
1. 接收玩家意圖（WebSocket 訊息）
2. 變更權威狀態（SessionStore / TableAllocator / OrderLedger）
3. 產生要送給房間成員的事件（Delivery）

原則：
- handle() 是同步的，每則訊息處理完才處理下一則，不需要鎖
- handler 不碰 transport，只回傳 Delivery 清單，由 api.websocket 負責發送
- end-session 的封存只排入佇列，由 flush_archives() 在 event loop 之外寫入資料庫
- 協定層失敗（房間滿、角色重複、沒有空桌）只回給請求者，不廣播
- 斷線 / 逾時造成的補償會廣播給整個房間（兩個角色的狀態都受影響）
- 格式錯誤的訊息記 log 後丟棄，房間繼續運作
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from pydantic import ValidationError

from core.exceptions import (
    DineVerseException,
    RoomFull,
    RoleTaken,
    RoomNotFound,
    PlayerNotFound,
    RoleNotPermitted,
    InvalidStatusTransition,
)
from core.order_ledger import OrderLine, OrderRecord, OrderStatus
from core.session_archive import SessionArchive
from core.session_store import SessionStore, RoomRecord, PlayerRecord, PlayerRole
from schemas import (
    CLIENT_MESSAGE_TYPES,
    parse_client_message,
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
from services.compensation_service import CancelReason, compensation_for, is_cooking_timed_out
from services.stats_service import build_session_stats

logger = logging.getLogger(__name__)

# 訂單狀態只能往前走；cancelled 可以從任何非 served 狀態進入
ORDER_FLOW = [OrderStatus.PENDING, OrderStatus.COOKING, OrderStatus.READY, OrderStatus.SERVED]


def is_valid_transition(current: OrderStatus, new: OrderStatus) -> bool:
    if current in (OrderStatus.SERVED, OrderStatus.CANCELLED):
        return False
    if new == OrderStatus.CANCELLED:
        return True
    return ORDER_FLOW.index(new) > ORDER_FLOW.index(current)


@dataclass
class Delivery:
    """一個要送出的事件：targets 是 connection id 清單"""
    targets: List[str]
    event: str
    payload: Any = None


class RelayProtocolHandler:

    def __init__(
        self,
        store: SessionStore,
        archive: Optional[SessionArchive] = None,
        clock: Callable[[], float] = time.time,
        cooking_timeout_factor: float = 2.0,
        cooking_timeout_grace: float = 5.0,
    ):
        self._store = store
        self._archive = archive
        self._clock = clock
        self._timeout_factor = cooking_timeout_factor
        self._timeout_grace = cooking_timeout_grace
        self._archive_jobs: List[Tuple[dict, List[dict]]] = []

        self._routes: Dict[type, Callable[[str, Any], List[Delivery]]] = {
            JoinRoom: self._on_join_room,
            PlayerMove: self._on_player_move,
            PlayerAction: self._on_player_action,
            BookTable: self._on_book_table,
            PlaceOrder: self._on_place_order,
            OrderStatusUpdate: self._on_order_status_update,
            SubmitRating: self._on_submit_rating,
            TutorialCompleted: self._on_tutorial_completed,
            VisitorSatDown: self._on_visitor_sat_down,
            MenuRequested: self._on_menu_requested,
            OrderCompleted: self._on_order_completed,
            EndSession: self._on_end_session,
            Ping: self._on_ping,
        }
        missing = [t.__name__ for t in CLIENT_MESSAGE_TYPES if t not in self._routes]
        if missing:
            raise RuntimeError(f"No route for client messages: {', '.join(missing)}")

    @property
    def store(self) -> SessionStore:
        return self._store

    # ============ 入口 ============

    def handle(self, conn_id: str, raw: Any) -> List[Delivery]:
        """
        處理一則 client 訊息

        參數：
            conn_id: 送出訊息的連線
            raw: 已 JSON decode 的物件

        返回：
            要送出的 Delivery 清單（已去除沒有對象的項目）
        """
        try:
            message = parse_client_message(raw)
        except ValidationError as e:
            logger.warning(f"Dropping malformed message from {conn_id}: {e.error_count()} validation errors")
            return []

        try:
            deliveries = self._routes[type(message)](conn_id, message)
        except (RoomNotFound, PlayerNotFound) as e:
            logger.warning(f"Dropping {message.type} from {conn_id}: {e}")
            return []
        except (RoleNotPermitted, InvalidStatusTransition) as e:
            logger.warning(f"Rejected {message.type} from {conn_id}: {e}")
            deliveries = [self._error(conn_id, message.type, str(e))]
        except DineVerseException as e:
            logger.error(f"Failed to handle {message.type} from {conn_id}: {e}", exc_info=True)
            deliveries = [self._error(conn_id, message.type, "Internal error")]

        return [delivery for delivery in deliveries if delivery.targets]

    def disconnect(self, conn_id: str) -> List[Delivery]:
        """
        連線中斷：先補償進行中的訂單，再移除玩家

        最後一位玩家離開時房間立即刪除
        """
        deliveries: List[Delivery] = []
        for room in self._store.rooms_for_connection(conn_id):
            player = room.players[conn_id]
            deliveries.extend(self._compensate_departure(room, player))
            self._store.remove_player(room, conn_id)
            deliveries.append(Delivery(list(room.players), "player-left", {"playerId": conn_id}))
        return [delivery for delivery in deliveries if delivery.targets]

    def sweep(self, now: Optional[float] = None) -> List[Delivery]:
        """
        烹飪逾時看門狗

        只看廚師已開始烹飪（cooking）的訂單，從開始烹飪的時間起算；
        超過 estimated * factor + grace 秒會被取消，
        訪客獲得免費餐點（全額退款），廚師扣分

        沒有廚師的房間、還在排隊（pending）的訂單都不算逾時
        """
        now = self._clock() if now is None else now
        deliveries: List[Delivery] = []
        for room in self._store.rooms():
            if self._store.player_by_role(room, PlayerRole.CHEF) is None:
                continue
            for order in room.orders.active_orders():
                if order.status != OrderStatus.COOKING or order.cooking_started_at is None:
                    continue
                if is_cooking_timed_out(order.cooking_started_at, order.estimated_time, now,
                                        self._timeout_factor, self._timeout_grace):
                    deliveries.append(self._cancel_order(
                        room, order, CancelReason.COOKING_TIMEOUT, list(room.players)
                    ))
        return [delivery for delivery in deliveries if delivery.targets]

    def flush_archives(self) -> int:
        """
        寫入 end-session 排入的封存工作

        會做資料庫 I/O，transport 應該在 threadpool 呼叫

        返回：
            成功寫入的 session 數
        """
        jobs, self._archive_jobs = self._archive_jobs, []
        if self._archive is None:
            return 0
        return sum(1 for stats, events in jobs if self._archive.save(stats, events))

    # ============ 房間 / 玩家 ============

    def _on_join_room(self, conn_id: str, msg: JoinRoom) -> List[Delivery]:
        room = self._store.create_or_get_room(msg.room_id)

        existing = room.players.get(conn_id)
        if existing is not None:
            # 重複 join：重送快照即可
            return [self._room_joined(room, existing)]

        try:
            player = self._store.add_player(room, msg.role, conn_id, msg.username)
        except RoomFull:
            logger.warning(f"Room {msg.room_id} is full, rejecting {conn_id}")
            return [Delivery([conn_id], "room-full", {"roomId": msg.room_id})]
        except RoleTaken:
            logger.warning(f"Role {msg.role.value} taken in room {msg.room_id}, rejecting {conn_id}")
            return [Delivery([conn_id], "role-taken", {"roomId": msg.room_id, "role": msg.role.value})]

        return [
            self._room_joined(room, player),
            Delivery(self._others(room, conn_id), "player-joined", player.to_payload()),
        ]

    def _room_joined(self, room: RoomRecord, player: PlayerRecord) -> Delivery:
        snapshot = self._store.snapshot(room)
        payload = {
            "roomId": room.id,
            "playerData": player.to_payload(),
            "otherPlayers": [p for p in snapshot["players"] if p["id"] != player.id],
            "tables": snapshot["tables"],
            "orders": snapshot["orders"],
            "menu": snapshot["menu"],
        }
        return Delivery([player.id], "room-joined", payload)

    def _on_player_move(self, conn_id: str, msg: PlayerMove) -> List[Delivery]:
        room, player = self._member(conn_id, msg.room_id)
        # 只記錄給後加入者的快照用，不做驗證
        player.position = msg.position.model_dump()
        player.rotation = msg.rotation.model_dump()
        return [Delivery(self._others(room, conn_id), "player-moved", {
            "id": conn_id,
            "position": player.position,
            "rotation": player.rotation,
        })]

    def _on_player_action(self, conn_id: str, msg: PlayerAction) -> List[Delivery]:
        room, _ = self._member(conn_id, msg.room_id)
        return [Delivery(self._others(room, conn_id), "player-action", {
            "playerId": conn_id,
            "action": msg.action,
            "data": msg.data,
        })]

    # ============ 訂位 ============

    def _on_book_table(self, conn_id: str, msg: BookTable) -> List[Delivery]:
        room, player = self._member(conn_id, msg.room_id)
        self._require_role(player, PlayerRole.VISITOR, "Only the visitor can book a table")

        replay = self._replay(room, conn_id, msg.request_id)
        if replay is not None:
            return replay

        held = room.tables.reserved_by(conn_id)
        if held is not None:
            # 已經有桌子了：回同一張，不重複保留
            deliveries = [self._table_assigned(conn_id, held, msg.request_id)]
        else:
            table = room.tables.find_available(msg.table_size)
            if table is not None and room.tables.reserve(table.id, conn_id):
                room.record_event("TABLE_RESERVED", {"table_id": table.id, "player_id": conn_id},
                                  at=self._clock())
                logger.info(f"Table {table.id} assigned to {conn_id} in room {room.id}")
                deliveries = [
                    self._table_assigned(conn_id, table, msg.request_id),
                    Delivery(self._others(room, conn_id), "table-booked", {
                        "tableId": table.id,
                        "playerId": conn_id,
                    }),
                ]
            else:
                logger.info(f"No table for party of {msg.table_size} in room {room.id}")
                deliveries = [Delivery([conn_id], "table-unavailable", {
                    "message": "No tables available, please wait",
                    "requestId": msg.request_id,
                })]

        self._remember(room, conn_id, msg.request_id, deliveries)
        return deliveries

    @staticmethod
    def _table_assigned(conn_id: str, table, request_id: Optional[str]) -> Delivery:
        return Delivery([conn_id], "table-assigned", {
            "tableId": table.id,
            "position": table.position,
            "capacity": table.capacity,
            "requestId": request_id,
        })

    # ============ 訂單 ============

    def _on_place_order(self, conn_id: str, msg: PlaceOrder) -> List[Delivery]:
        room, player = self._member(conn_id, msg.room_id)
        self._require_role(player, PlayerRole.VISITOR, "Only the visitor can place an order")

        replay = self._replay(room, conn_id, msg.request_id)
        if replay is not None:
            return replay

        lines = [OrderLine(name=item.name, quantity=item.quantity, price=item.price) for item in msg.items]

        # 庫存檢查必須在建立訂單之前；整批通過才扣除
        if not room.orders.check_availability(lines):
            deliveries = [self._order_rejected(conn_id, msg, "unavailable",
                                               "Some items are no longer available")]
        else:
            order = room.orders.create_order(msg.table_id, lines)
            if order is None:
                deliveries = [self._order_rejected(conn_id, msg, "table-not-reserved",
                                                   f"Table {msg.table_id} is not reserved")]
            else:
                room.orders.update_inventory(lines)
                room.record_event("ORDER_PLACED", {"order_id": order.id, "table_id": order.table_id,
                                                   "total_price": order.total_price}, at=order.order_time)
                chef = self._store.player_by_role(room, PlayerRole.CHEF)
                deliveries = [
                    Delivery([conn_id], "order-placed", {
                        "orderId": order.id,
                        "tableId": order.table_id,
                        "dish": order.dish,
                        "totalPrice": order.total_price,
                        "estimatedTime": order.estimated_time,
                        "requestId": msg.request_id,
                    }),
                    Delivery([chef.id] if chef else [], "order-received", {
                        "orderId": order.id,
                        "dish": order.dish,
                        "tableId": order.table_id,
                        "orderTime": order.order_time,
                        "estimatedTime": order.estimated_time,
                        "totalPrice": order.total_price,
                        "items": [line.to_payload() for line in order.items],
                    }),
                ]

        self._remember(room, conn_id, msg.request_id, deliveries)
        return deliveries

    @staticmethod
    def _order_rejected(conn_id: str, msg: PlaceOrder, reason: str, message: str) -> Delivery:
        return Delivery([conn_id], "order-rejected", {
            "reason": reason,
            "message": message,
            "tableId": msg.table_id,
            "requestId": msg.request_id,
        })

    def _on_order_status_update(self, conn_id: str, msg: OrderStatusUpdate) -> List[Delivery]:
        room, player = self._member(conn_id, msg.room_id)

        order = room.orders.get(msg.order_id)
        if order is None:
            # 已 served / cancelled 的訂單已不在 ledger：重複更新是 no-op
            logger.debug(f"Ignoring status update for unknown order {msg.order_id}")
            return []

        if order.status == msg.status:
            return []

        if not is_valid_transition(order.status, msg.status):
            raise InvalidStatusTransition(
                f"Order {order.id} cannot go from {order.status.value} to {msg.status.value}"
            )

        if msg.status == OrderStatus.CANCELLED:
            return [self._cancel_order(room, order, CancelReason.REQUESTED, list(room.players))]

        chef_id = conn_id if player.role == PlayerRole.CHEF else None
        room.orders.update_status(order.id, msg.status, chef_id)
        if msg.status == OrderStatus.SERVED:
            room.record_event("ORDER_SERVED", {"order_id": order.id}, at=self._clock())

        return [self._notify_visitor(room, "order-status-changed", {
            "orderId": order.id,
            "status": msg.status.value,
            "dish": order.dish,
            "tableId": order.table_id,
        })]

    def _on_order_completed(self, conn_id: str, msg: OrderCompleted) -> List[Delivery]:
        room, player = self._member(conn_id, msg.room_id)

        order = room.orders.get(msg.order_id)
        if order is None or not is_valid_transition(order.status, OrderStatus.READY):
            logger.debug(f"Ignoring order-completed for {msg.order_id}")
            return []

        chef_id = conn_id if player.role == PlayerRole.CHEF else None
        room.orders.update_status(order.id, OrderStatus.READY, chef_id)
        return [self._notify_visitor(room, "order-ready", {
            "orderId": order.id,
            "dish": order.dish,
            "wasOnTime": msg.was_on_time,
            "completionTime": msg.completion_time,
        })]

    def _cancel_order(
        self,
        room: RoomRecord,
        order: OrderRecord,
        reason: CancelReason,
        targets: List[str],
    ) -> Delivery:
        compensation = compensation_for(order.total_price, reason)
        room.orders.cancel(order.id)

        room.stats.cancelled_orders += 1
        room.stats.refunds += compensation.refund
        room.stats.chef_penalty += compensation.chef_penalty
        if compensation.free_dish:
            room.stats.free_dishes += 1

        room.record_event("ORDER_CANCELLED", {
            "order_id": order.id,
            "reason": reason.value,
            "refund": compensation.refund,
            "chef_penalty": compensation.chef_penalty,
        }, at=self._clock())
        logger.warning(f"Order {order.id} in room {room.id} cancelled ({reason.value})")

        return Delivery(targets, "order-cancelled", {
            "orderId": order.id,
            "tableId": order.table_id,
            "dish": order.dish,
            "reason": reason.value,
            "refund": compensation.refund,
            "chefPenalty": compensation.chef_penalty,
            "freeDish": compensation.free_dish,
        })

    def _compensate_departure(self, room: RoomRecord, player: PlayerRecord) -> List[Delivery]:
        remaining = self._others(room, player.id)
        deliveries = []

        if player.role == PlayerRole.CHEF:
            for order in room.orders.active_orders():
                deliveries.append(self._cancel_order(room, order, CancelReason.CHEF_DISCONNECTED, remaining))
        else:
            for order in room.orders.active_orders():
                deliveries.append(self._cancel_order(room, order, CancelReason.VISITOR_LEFT, remaining))
            table = room.tables.reserved_by(player.id)
            if table is not None:
                room.tables.release(table.id)
                deliveries.append(Delivery(remaining, "table-released", {"tableId": table.id}))

        return deliveries

    # ============ 其他事件 ============

    def _on_submit_rating(self, conn_id: str, msg: SubmitRating) -> List[Delivery]:
        room, player = self._member(conn_id, msg.room_id)
        self._require_role(player, PlayerRole.VISITOR, "Only the visitor can submit a rating")

        room.ratings.append(msg.rating)
        room.record_event("RATING_SUBMITTED", {"player_id": conn_id, "rating": msg.rating}, at=self._clock())
        return [Delivery(list(room.players), "rating-submitted", {"playerId": conn_id, "rating": msg.rating})]

    def _on_tutorial_completed(self, conn_id: str, msg: TutorialCompleted) -> List[Delivery]:
        room, _ = self._member(conn_id, msg.room_id)
        return [Delivery(self._others(room, conn_id), "chef-ready", {"playerId": conn_id})]

    def _on_visitor_sat_down(self, conn_id: str, msg: VisitorSatDown) -> List[Delivery]:
        room, _ = self._member(conn_id, msg.room_id)
        return [Delivery(self._others(room, conn_id), "visitor-seated", {
            "playerId": conn_id,
            "tableId": msg.table_id,
        })]

    def _on_menu_requested(self, conn_id: str, msg: MenuRequested) -> List[Delivery]:
        room, _ = self._member(conn_id, msg.room_id)
        return [Delivery(self._others(room, conn_id), "menu-request", {
            "playerId": conn_id,
            "tableId": msg.table_id,
        })]

    def _on_end_session(self, conn_id: str, msg: EndSession) -> List[Delivery]:
        room, _ = self._member(conn_id, msg.room_id)

        now = self._clock()
        stats = build_session_stats(room, completed_at=now)
        room.record_event("SESSION_ENDED", {"ended_by": conn_id}, at=now)
        targets = list(room.players)

        if self._archive is not None:
            # 在 flush_archives() 時寫入，handle() 不做 I/O
            self._archive_jobs.append((stats, list(room.events)))
        self._store.delete_room(room.id)

        logger.info(f"Session ended for room {room.id}")
        return [Delivery(targets, "session-ended", stats)]

    def _on_ping(self, conn_id: str, msg: Ping) -> List[Delivery]:
        return [Delivery([conn_id], "pong", {"sentAt": msg.sent_at, "serverTime": self._clock()})]

    # ============ 工具 ============

    def _member(self, conn_id: str, room_id: str):
        room = self._store.get_room(room_id)
        player = room.players.get(conn_id)
        if player is None:
            raise PlayerNotFound(conn_id)
        return room, player

    @staticmethod
    def _require_role(player: PlayerRecord, role: PlayerRole, message: str) -> None:
        if player.role != role:
            raise RoleNotPermitted(message)

    @staticmethod
    def _others(room: RoomRecord, conn_id: str) -> List[str]:
        return [player_id for player_id in room.players if player_id != conn_id]

    def _notify_visitor(self, room: RoomRecord, event: str, payload: dict) -> Delivery:
        visitor = self._store.player_by_role(room, PlayerRole.VISITOR)
        return Delivery([visitor.id] if visitor else [], event, payload)

    @staticmethod
    def _error(conn_id: str, request_type: str, message: str) -> Delivery:
        return Delivery([conn_id], "error", {"request": request_type, "message": message})

    @staticmethod
    def _replay(room: RoomRecord, conn_id: str, request_id: Optional[str]) -> Optional[List[Delivery]]:
        if not request_id:
            return None
        cached = room.responses.get(request_id)
        if cached is None:
            return None
        logger.info(f"Replaying response for request {request_id} from {conn_id}")
        return [Delivery([conn_id], event, payload) for event, payload in cached]

    @staticmethod
    def _remember(room: RoomRecord, conn_id: str, request_id: Optional[str], deliveries: List[Delivery]) -> None:
        if not request_id:
            return
        # 只快取回給請求者的部分；廣播給其他人的事件不重播
        own = tuple((d.event, d.payload) for d in deliveries if d.targets == [conn_id])
        room.remember_response(request_id, own)
