"""
WebSocket client for live pool Swap logs.

Speaks JSON-RPC over a websocket: one `eth_subscribe("logs", ...)` filtered
to a list of pool addresses and the pool Swap event topic. Notifications
are decoded into SwapLog batches and handed to a callback.

Features:
    - Auto-reconnect with exponential backoff
    - Heartbeat monitoring (detect stale connections)
    - Subscription persistence across reconnects
    - Subscription errors and undecodable logs are logged, never raised
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import websockets
from eth_abi import decode
from eth_utils import decode_hex, encode_hex, keccak, to_checksum_address
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
)

from .models import SwapLog

logger = logging.getLogger(__name__)

SWAP_EVENT_SIGNATURE = "Swap(address,address,int256,int256,uint160,uint128,int24)"
SWAP_TOPIC = encode_hex(keccak(text=SWAP_EVENT_SIGNATURE))
SWAP_DATA_TYPES = ["int256", "int256", "uint160", "uint128", "int24"]


class FeedState(str, Enum):
    """WebSocket connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    STOPPING = "stopping"


LogsCallback = Callable[[list[SwapLog]], Awaitable[None]]
StateCallback = Callable[[FeedState], Awaitable[None]]


def _topic_to_address(topic: str) -> str:
    return to_checksum_address("0x" + topic[-40:])


def decode_swap_log(log: dict[str, Any]) -> SwapLog:
    """
    Decode a raw eth log into a SwapLog.

    Raises:
        ValueError: If the log is not a well-formed Swap event
    """
    topics = log.get("topics") or []
    if len(topics) < 3:
        raise ValueError(f"Swap log has {len(topics)} topics, expected 3")
    if topics[0].lower() != SWAP_TOPIC.lower():
        raise ValueError(f"Unexpected event topic {topics[0]}")

    try:
        amount0, amount1, sqrt_price_x96, liquidity, tick = decode(
            SWAP_DATA_TYPES, decode_hex(log["data"])
        )
    except Exception as e:
        raise ValueError(f"Cannot decode swap data: {e}") from e

    block_number = log.get("blockNumber")
    if isinstance(block_number, str):
        block_number = int(block_number, 16)

    return SwapLog(
        pool_address=to_checksum_address(log["address"]),
        sender=_topic_to_address(topics[1]),
        recipient=_topic_to_address(topics[2]),
        amount0=amount0,
        amount1=amount1,
        sqrt_price_x96=sqrt_price_x96,
        liquidity=liquidity,
        tick=tick,
        block_number=block_number,
        transaction_hash=log.get("transactionHash"),
        received_at=datetime.now(timezone.utc),
    )


class SwapLogFeed:
    """
    Resilient JSON-RPC websocket subscription for pool Swap logs.

    Usage:
        async def handle_logs(logs: list[SwapLog]):
            ...

        feed = SwapLogFeed(url, on_logs=handle_logs)
        await feed.start()
        await feed.subscribe(["0xPool1...", "0xPool2..."])

        # ... later
        await feed.stop()
    """

    def __init__(
        self,
        url: str,
        on_logs: LogsCallback,
        on_state_change: Optional[StateCallback] = None,
        heartbeat_timeout: float = 120.0,
        initial_reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 60.0,
        reconnect_multiplier: float = 2.0,
    ):
        """
        Initialize the feed.

        Args:
            url: JSON-RPC websocket endpoint
            on_logs: Callback receiving each decoded batch of swap logs
            on_state_change: Awaited with the new FeedState on each transition
            heartbeat_timeout: Seconds without a message before reconnect
            initial_reconnect_delay: First reconnect wait in seconds
            max_reconnect_delay: Cap on the reconnect wait
            reconnect_multiplier: Growth factor applied after each failed attempt
        """
        self._url = url
        self._on_logs = on_logs
        self._on_state_change = on_state_change

        self._heartbeat_timeout = heartbeat_timeout
        self._initial_reconnect_delay = initial_reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._reconnect_multiplier = reconnect_multiplier

        self._state = FeedState.DISCONNECTED
        self._ws: Optional[Any] = None
        self._addresses: list[str] = []
        self._subscription_id: Optional[str] = None
        self._pending_subscribe: set[int] = set()
        self._request_ids = itertools.count(1)

        self._current_reconnect_delay = initial_reconnect_delay
        self._reconnect_count = 0

        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._last_message_time: Optional[float] = None

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == FeedState.CONNECTED

    @property
    def addresses(self) -> list[str]:
        return list(self._addresses)

    @property
    def subscription_id(self) -> Optional[str]:
        return self._subscription_id

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    async def _set_state(self, state: FeedState) -> None:
        """Update state and notify callback."""
        if self._state != state:
            old_state = self._state
            self._state = state
            logger.info(f"Swap feed state: {old_state.value} -> {state.value}")

            if self._on_state_change:
                try:
                    await self._on_state_change(state)
                except Exception as e:
                    logger.error(f"Error in state change callback: {e}")

    async def start(self) -> None:
        """Connect and start receiving; reconnects automatically."""
        if self._state != FeedState.DISCONNECTED:
            logger.warning(f"Cannot start: already in state {self._state.value}")
            return

        self._stop_event.clear()
        await self._connect()

    async def stop(self) -> None:
        """Close the connection and cancel the receive loop."""
        if self._state == FeedState.DISCONNECTED:
            return

        logger.info("Stopping swap feed...")
        await self._set_state(FeedState.STOPPING)
        self._stop_event.set()

        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        self._reconnect_task = None

        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None

        if self._ws:
            try:
                await self._ws.close()
            except Exception as e:
                logger.warning(f"Error closing websocket: {e}")
            self._ws = None

        self._subscription_id = None
        self._pending_subscribe.clear()
        await self._set_state(FeedState.DISCONNECTED)
        logger.info("Swap feed stopped")

    async def _connect(self) -> None:
        await self._set_state(FeedState.CONNECTING)

        try:
            self._ws = await websockets.connect(
                self._url,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
                max_size=None,
            )

            self._last_message_time = asyncio.get_running_loop().time()
            self._current_reconnect_delay = self._initial_reconnect_delay
            self._subscription_id = None

            await self._set_state(FeedState.CONNECTED)
            logger.info(f"Connected to {self._url}")

            if self._addresses:
                await self._send_subscribe()

            self._receive_task = asyncio.create_task(self._receive_loop())

        except Exception as e:
            logger.error(f"Failed to connect: {e}")
            # Retry in the background so start() never blocks its caller
            self._reconnect_task = asyncio.create_task(self._schedule_reconnect())

    async def _receive_loop(self) -> None:
        try:
            while not self._stop_event.is_set() and self._ws:
                try:
                    message = await asyncio.wait_for(
                        self._ws.recv(),
                        timeout=self._heartbeat_timeout,
                    )
                    self._last_message_time = asyncio.get_running_loop().time()
                    await self._handle_message(message)

                except asyncio.TimeoutError:
                    logger.warning(
                        f"No message received in {self._heartbeat_timeout}s, reconnecting..."
                    )
                    if self._ws:
                        try:
                            await self._ws.close()
                        except Exception as close_err:
                            logger.debug(f"Error closing stale socket: {close_err}")
                        self._ws = None
                    break

                except ConnectionClosedOK:
                    logger.info("Websocket closed normally")
                    break

                except ConnectionClosedError as e:
                    logger.warning(f"Websocket closed with error: {e}")
                    break

                except ConnectionClosed as e:
                    logger.warning(f"Websocket connection closed: {e}")
                    break

        except asyncio.CancelledError:
            logger.debug("Receive loop cancelled")
            raise

        except Exception as e:
            logger.error(f"Error in receive loop: {e}")

        if not self._stop_event.is_set():
            await self._schedule_reconnect()

    async def _schedule_reconnect(self) -> None:
        """Reconnect with exponential backoff."""
        if self._stop_event.is_set():
            return

        self._reconnect_count += 1
        await self._set_state(FeedState.RECONNECTING)

        delay = self._current_reconnect_delay
        logger.info(f"Reconnecting in {delay:.1f}s (attempt #{self._reconnect_count})...")

        await asyncio.sleep(delay)

        self._current_reconnect_delay = min(
            self._current_reconnect_delay * self._reconnect_multiplier,
            self._max_reconnect_delay,
        )

        if not self._stop_event.is_set():
            await self._connect()

    async def _handle_message(self, raw_message: str | bytes) -> None:
        """Parse a JSON-RPC frame (single or batched)."""
        try:
            if not raw_message:
                return

            data = json.loads(raw_message)

            if isinstance(data, list):
                for item in data:
                    if isinstance(item, dict):
                        await self._handle_single_message(item)
                return

            if isinstance(data, dict):
                await self._handle_single_message(data)

        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse message: {e}")

        except Exception as e:
            logger.error(f"Error handling message: {e}")

    async def _handle_single_message(self, data: dict[str, Any]) -> None:
        if data.get("method") == "eth_subscription":
            params = data.get("params") or {}
            if self._subscription_id and params.get("subscription") != self._subscription_id:
                logger.debug(f"Ignoring notification for stale subscription {params.get('subscription')}")
                return
            result = params.get("result")
            raw_logs = result if isinstance(result, list) else [result]
            await self._dispatch_logs([log for log in raw_logs if isinstance(log, dict)])
            return

        request_id = data.get("id")
        if "error" in data:
            logger.error(f"Subscription error for request {request_id}: {data['error']}")
            self._pending_subscribe.discard(request_id)
            return

        if request_id in self._pending_subscribe:
            self._pending_subscribe.discard(request_id)
            self._subscription_id = data.get("result")
            logger.info(f"Subscribed to swap logs ({self._subscription_id})")

    async def _dispatch_logs(self, raw_logs: list[dict[str, Any]]) -> None:
        batch: list[SwapLog] = []
        for raw in raw_logs:
            if raw.get("removed"):
                continue
            try:
                batch.append(decode_swap_log(raw))
            except ValueError as e:
                logger.warning(f"Dropping undecodable swap log: {e}")

        if not batch:
            return

        try:
            await self._on_logs(batch)
        except Exception as e:
            logger.error(f"Error in swap log callback: {e}")

    # =========================================================================
    # Subscription management
    # =========================================================================

    async def subscribe(self, addresses: list[str]) -> None:
        """
        Replace the subscription with exactly these pool addresses.

        The address list persists across reconnects.
        """
        self._addresses = list(addresses)

        if not self.is_connected:
            logger.debug(f"Queued {len(self._addresses)} pools for subscription on connect")
            return

        await self._send_unsubscribe()
        if self._addresses:
            await self._send_subscribe()

    async def _send(self, method: str, params: list[Any]) -> Optional[int]:
        if not self._ws:
            return None

        request_id = next(self._request_ids)
        message = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        try:
            await self._ws.send(json.dumps(message))
        except Exception as e:
            logger.error(f"Failed to send {method}: {e}")
            return None
        return request_id

    async def _send_subscribe(self) -> None:
        request_id = await self._send(
            "eth_subscribe",
            ["logs", {"address": self._addresses, "topics": [SWAP_TOPIC]}],
        )
        if request_id is not None:
            self._pending_subscribe.add(request_id)
            logger.info(f"Sent log subscription for {len(self._addresses)} pools")

    async def _send_unsubscribe(self) -> None:
        if not self._subscription_id:
            return
        await self._send("eth_unsubscribe", [self._subscription_id])
        logger.info(f"Sent unsubscribe for {self._subscription_id}")
        self._subscription_id = None
