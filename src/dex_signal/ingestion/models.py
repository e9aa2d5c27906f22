"""
Data models for the ingestion layer.

These models represent data structures for:
- Token snapshots from the hourly analytics index
- Liquidity pools and their constituent tokens
- Directional swap records decoded from live events or backfill
- Per-token projections of the swap history

Amounts are raw on-chain integers (arbitrary precision). They are written
to JSON as decimal strings so a round trip through the cache is exact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class TokenSize(str, Enum):
    """Size bucket assigned by TVL tertile."""
    LARGE = "large"
    MEDIUM = "medium"
    SMALL = "small"


class TradeAction(str, Enum):
    """Direction of a good-trader leg."""
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class TokenSnapshot:
    """
    One token's hourly statistics from the analytics index.

    Attributes:
        contract_address: Token contract address (as reported by the index)
        name: Token name
        symbol: Token symbol
        price_usd: Price in USD for the period
        total_value_locked_usd: TVL in USD for the period
        volume_usd: Volume in USD for the period
        period_start_unix: Start of the hour bucket the row belongs to
        created_at: Earliest known pool creation time (0 if unknown)
        size: Tertile bucket by TVL across the current universe
    """
    contract_address: str
    name: str
    symbol: str
    price_usd: float
    total_value_locked_usd: float
    volume_usd: float
    period_start_unix: int
    created_at: int = 0
    size: TokenSize = TokenSize.SMALL
    total_value_locked: str = "0"
    token_total_value_locked: str = "0"
    tx_count: int = 0

    @property
    def heat_ratio(self) -> float:
        """Volume divided by TVL, 0 when TVL is 0."""
        if self.total_value_locked_usd > 0:
            return self.volume_usd / self.total_value_locked_usd
        return 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "contractAddress": self.contract_address,
            "name": self.name,
            "symbol": self.symbol,
            "priceUSD": str(self.price_usd),
            "totalValueLockedUSD": str(self.total_value_locked_usd),
            "volumeUSD": str(self.volume_usd),
            "periodStartUnix": self.period_start_unix,
            "created": self.created_at,
            "size": self.size.value,
            "totalValueLocked": self.total_value_locked,
            "tokenTotalValueLocked": self.token_total_value_locked,
            "txCount": self.tx_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenSnapshot":
        return cls(
            contract_address=data["contractAddress"],
            name=data.get("name", ""),
            symbol=data.get("symbol", ""),
            price_usd=float(data.get("priceUSD") or 0),
            total_value_locked_usd=float(data.get("totalValueLockedUSD") or 0),
            volume_usd=float(data.get("volumeUSD") or 0),
            period_start_unix=int(data.get("periodStartUnix") or 0),
            created_at=int(data.get("created") or 0),
            size=TokenSize(data.get("size", TokenSize.SMALL.value)),
            total_value_locked=str(data.get("totalValueLocked", "0")),
            token_total_value_locked=str(data.get("tokenTotalValueLocked", "0")),
            tx_count=int(data.get("txCount") or 0),
        )


@dataclass(frozen=True)
class PoolToken:
    """One side of a pool."""
    address: str
    symbol: str


@dataclass(frozen=True)
class Pool:
    """A liquidity pool trading exactly two tokens."""
    id: str
    liquidity: int
    token0: PoolToken
    token1: PoolToken

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "liquidity": str(self.liquidity),
            "token0": {"id": self.token0.address, "symbol": self.token0.symbol},
            "token1": {"id": self.token1.address, "symbol": self.token1.symbol},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Pool":
        return cls(
            id=data["id"],
            liquidity=int(data.get("liquidity") or 0),
            token0=PoolToken(data["token0"]["id"], data["token0"].get("symbol", "")),
            token1=PoolToken(data["token1"]["id"], data["token1"].get("symbol", "")),
        )


@dataclass(frozen=True)
class TokenLeg:
    """A token and an unsigned amount moved in one direction of a swap."""
    address: str
    symbol: str
    amount: int

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "symbol": self.symbol, "amount": str(self.amount)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenLeg":
        return cls(
            address=data["address"],
            symbol=data.get("symbol", ""),
            amount=int(data["amount"]),
        )


@dataclass(frozen=True)
class SwapRecord:
    """
    Directional swap derived from a signed two-leg amount pair.

    The negative leg is the token the sender sold (its magnitude becomes
    the sold amount); the other leg is the token bought. Amounts are
    always non-negative.
    """
    timestamp: datetime
    sender: str
    sold: TokenLeg
    bought: TokenLeg
    pool_id: Optional[str] = None

    @classmethod
    def from_legs(
        cls,
        timestamp: datetime,
        sender: str,
        token0: PoolToken,
        token1: PoolToken,
        amount0: int,
        amount1: int,
        pool_id: Optional[str] = None,
    ) -> "SwapRecord":
        """Build a record by inspecting the sign of each leg."""
        if amount0 < 0:
            sold = TokenLeg(token0.address, token0.symbol, -amount0)
            bought = TokenLeg(token1.address, token1.symbol, abs(amount1))
        else:
            sold = TokenLeg(token1.address, token1.symbol, abs(amount1))
            bought = TokenLeg(token0.address, token0.symbol, amount0)
        return cls(
            timestamp=timestamp,
            sender=sender,
            sold=sold,
            bought=bought,
            pool_id=pool_id,
        )

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds since this swap was recorded."""
        now = now or datetime.now(timezone.utc)
        return (now - self.timestamp).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "sender": self.sender,
            "poolId": self.pool_id,
            "soldToken": self.sold.to_dict(),
            "boughtToken": self.bought.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SwapRecord":
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            timestamp=timestamp,
            sender=data["sender"],
            sold=TokenLeg.from_dict(data["soldToken"]),
            bought=TokenLeg.from_dict(data["boughtToken"]),
            pool_id=data.get("poolId"),
        )


@dataclass
class TokenSwapSummary:
    """Running totals for one token over the retained window."""
    symbol: str
    address: str
    total_sold: int = 0
    total_bought: int = 0
    swap_count: int = 0
    net_amount: int = 0

    @property
    def net_direction(self) -> str:
        return "NET BUY" if self.net_amount > 0 else "NET SELL"


@dataclass
class TokenInfo:
    """Buy/sell counts and net signed amount for a token."""
    contract_address: str
    buys: int = 0
    sold: int = 0
    amount: int = 0

    @property
    def net_buys(self) -> int:
        return self.buys - self.sold

    def to_dict(self) -> dict[str, Any]:
        return {
            "contractAddress": self.contract_address,
            "buys": self.buys,
            "sold": self.sold,
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class GoodTraderSwap:
    """One leg of a swap made by an allow-listed trader."""
    trader: str
    timestamp: datetime
    action: TradeAction
    token: TokenLeg


@dataclass(frozen=True)
class SwapLog:
    """
    Decoded pool Swap event.

    Mirrors the on-chain event shape: sender, recipient, two signed leg
    amounts, and the price/liquidity/tick fields.
    """
    pool_address: str
    sender: str
    recipient: str
    amount0: int
    amount1: int
    sqrt_price_x96: int = 0
    liquidity: int = 0
    tick: int = 0
    block_number: Optional[int] = None
    transaction_hash: Optional[str] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
