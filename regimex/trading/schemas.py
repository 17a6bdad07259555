"""
Trading Schemas

Units:
    - prices are fixed-point integers (TradingConfig.price_scale = 1.0)
    - sizes are signed integer units of the base asset
    - P&L is in quote units: size × Δprice / price_scale
    - leverage and percentages are ×100 (300 = 3x, 500 bps = 5%)
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, Optional

from regimex.errors import ConfigurationError, ErrorKind


class ExecutionResult(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    RISK_BLOCKED = "RISK_BLOCKED"
    NO_ACTION = "NO_ACTION"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"


class OrderType(str, Enum):
    MARKET_BUY = "MARKET_BUY"
    MARKET_SELL = "MARKET_SELL"
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"


@dataclass
class RiskParameters:
    """Read-mostly risk limits; changed only through RiskParameterAdmin"""
    max_position_size: int = 5000
    max_leverage: int = 300             # ×100
    stop_loss_percent: int = 500        # basis points
    max_daily_loss: int = 1000          # quote units
    cooldown_period: float = 300.0      # clock units

    def validate(self) -> bool:
        if self.max_position_size <= 0:
            raise ConfigurationError("max_position_size must be positive")
        if self.max_leverage <= 0:
            raise ConfigurationError("max_leverage must be positive")
        if not 0 < self.stop_loss_percent <= 10000:
            raise ConfigurationError("stop_loss_percent must be in (0, 10000] basis points")
        if self.max_daily_loss < 0:
            raise ConfigurationError("max_daily_loss cannot be negative")
        if self.cooldown_period < 0:
            raise ConfigurationError("cooldown_period cannot be negative")
        return True

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'RiskParameters':
        return cls(
            max_position_size=int(data['max_position_size']),
            max_leverage=int(data['max_leverage']),
            stop_loss_percent=int(data['stop_loss_percent']),
            max_daily_loss=int(data['max_daily_loss']),
            cooldown_period=float(data['cooldown_period']),
        )


@dataclass
class Position:
    """One position per asset, owned by TradingExecutor"""
    asset: str
    size: int = 0
    average_price: int = 0
    unrealized_pnl: int = 0
    last_update: float = 0.0

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Position':
        return cls(
            asset=str(data['asset']),
            size=int(data['size']),
            average_price=int(data['average_price']),
            unrealized_pnl=int(data.get('unrealized_pnl', 0)),
            last_update=float(data.get('last_update', 0.0)),
        )


@dataclass
class TradeRequest:
    """Sent to the execution adapter"""
    asset_pair: str
    amount: int                         # unsigned
    order_type: OrderType
    reference_price: int

    def to_dict(self) -> Dict:
        return {
            'asset_pair': self.asset_pair,
            'amount': self.amount,
            'order_type': self.order_type.value,
            'reference_price': self.reference_price,
        }


@dataclass
class TradeResponse:
    """Returned by the execution adapter"""
    success: bool
    executed_amount: int = 0
    error: Optional[str] = None
    insufficient_funds: bool = False


@dataclass
class TradeRecord:
    trade_id: str
    timestamp: float
    asset_pair: str
    order_type: OrderType
    requested: int
    executed: int
    price: int
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'trade_id': self.trade_id,
            'timestamp': self.timestamp,
            'asset_pair': self.asset_pair,
            'order_type': self.order_type.value,
            'requested': self.requested,
            'executed': self.executed,
            'price': self.price,
            'success': self.success,
            'error': self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'TradeRecord':
        return cls(
            trade_id=str(data['trade_id']),
            timestamp=float(data['timestamp']),
            asset_pair=str(data['asset_pair']),
            order_type=OrderType(data['order_type']),
            requested=int(data['requested']),
            executed=int(data['executed']),
            price=int(data['price']),
            success=bool(data['success']),
            error=data.get('error'),
        )


@dataclass
class ExecutionOutcome:
    """Result of TradingExecutor.execute_strategy()"""
    result: ExecutionResult
    reason: str = ""
    target_size: Optional[int] = None
    previous_size: Optional[int] = None
    trade: Optional[TradeRecord] = None
    error_kind: Optional[ErrorKind] = None

    def to_dict(self) -> Dict:
        return {
            'result': self.result.value,
            'reason': self.reason,
            'target_size': self.target_size,
            'previous_size': self.previous_size,
            'trade': self.trade.to_dict() if self.trade else None,
            'error_kind': self.error_kind.value if self.error_kind else None,
        }


@dataclass
class TradingStats:
    trades_executed: int = 0
    trades_failed: int = 0
    risk_blocked: int = 0
    no_action: int = 0
    insufficient_funds: int = 0
    total_volume: int = 0
    realized_pnl: int = 0
    last_trade_time: Optional[float] = None

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'TradingStats':
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)
