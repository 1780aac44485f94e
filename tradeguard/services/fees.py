"""Fee-estimation policies.

A fee model turns a trade (size, price) into the round-trip exchange
fees for opening and closing it, in quote currency. The lifecycle
manager and the ledger only depend on the FeeModel protocol, so flat,
per-exchange or tiered schedules can be swapped in.
"""

from typing import Protocol, runtime_checkable

# One-way taker fee in percent per exchange
EXCHANGE_FEE_PERCENT: dict[str, float] = {
    "binance": 0.1,
    "binance_us": 0.1,
    "coinbase": 0.5,
    "kraken": 0.26,
}
DEFAULT_FEE_PERCENT = 0.1


@runtime_checkable
class FeeModel(Protocol):
    """Estimates round-trip fees for a trade."""

    def estimate(self, size: float, price: float) -> float:
        ...


class FlatFeeModel:
    """Round-trip fees as a flat fraction of trade value.

    The default 0.002 is 0.1% to enter plus 0.1% to exit.
    """

    def __init__(self, rate: float = 0.002) -> None:
        if rate < 0:
            raise ValueError(f"Fee rate must be non-negative, got {rate}")
        self.rate = rate

    def estimate(self, size: float, price: float) -> float:
        return abs(size * price) * self.rate

    def __repr__(self) -> str:
        return f"FlatFeeModel(rate={self.rate})"


class ExchangeFeeSchedule(FlatFeeModel):
    """Flat fee model keyed by exchange name.

    Unknown exchanges fall back to DEFAULT_FEE_PERCENT.
    """

    def __init__(self, exchange: str = "binance") -> None:
        self.exchange = exchange.lower()
        one_way_pct = EXCHANGE_FEE_PERCENT.get(self.exchange, DEFAULT_FEE_PERCENT)
        super().__init__(rate=one_way_pct / 100 * 2)

    @staticmethod
    def supported_exchanges() -> list[str]:
        return list(EXCHANGE_FEE_PERCENT.keys())

    def __repr__(self) -> str:
        return f"ExchangeFeeSchedule(exchange={self.exchange!r}, rate={self.rate})"
