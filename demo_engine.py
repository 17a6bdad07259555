"""
Decision Engine Demo

Runs the decision cycle against a seeded virtual market, injects a
market shock and a bad data source, and prints what the engine decided.
"""

import logging

from regimex.aggregation.schemas import Observation
from regimex.config import EngineConfig
from regimex.controller.data_source import MarketSnapshot, VirtualMarketDataSource
from regimex.controller.engine import DecisionEngine
from regimex.storage import InMemoryStore, ManualClock
from regimex.trading.adapters import SimulatedExecutionAdapter

logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


class RogueSourceMarket(VirtualMarketDataSource):
    """Virtual market plus one source that reports nonsense every cycle"""

    def read(self) -> MarketSnapshot:
        snapshot = super().read()
        snapshot.readings.append(Observation(
            source_id="rogue_feed",
            value=int(self.price * 3),
            timestamp=snapshot.timestamp,
            confidence=90,
            volume=1000,
        ))
        return snapshot


def print_record(record):
    print(
        f"  #{record.cycle:<4} {record.outcome.value:<20} "
        f"state={record.committed_state:<9} signal={record.signal:<11} "
        f"conf={record.confidence:<3} price={record.fused_value} "
        f"exec={record.execution_result}"
    )


def main():
    print("=" * 80)
    print("REGIMEX DECISION ENGINE DEMO")
    print("=" * 80)

    clock = ManualClock(start=1_700_000_000.0)
    engine = DecisionEngine(
        config=EngineConfig(),
        store=InMemoryStore(),
        clock=clock,
        data_source=RogueSourceMarket(clock=clock, seed=7, volatility=0.01),
        adapter=SimulatedExecutionAdapter(success_rate=0.9, seed=7),
    )
    # Short cooldown so the demo trades
    engine.update_risk_parameters(cooldown_period=60.0)

    print("\n[1] Warm-up: 30 cycles on a calm market")
    for _ in range(30):
        clock.advance(30)
        print_record(engine.run_cycle())

    print("\n[2] Market shock: -8%")
    engine.data_source.simulate_market_shock(-0.08)
    for _ in range(10):
        clock.advance(30)
        print_record(engine.run_cycle())

    print("\n[3] Switch to mean reversion")
    engine.switch_strategy("mean_reversion")
    for _ in range(10):
        clock.advance(30)
        print_record(engine.run_cycle())

    print("\n[4] Emergency stop, then one more trigger")
    engine.emergency_stop("demo maintenance window")
    print_record(engine.run_cycle())
    engine.resume()

    stats = engine.get_statistics()
    position = engine.get_position()
    print("\n" + "=" * 80)
    print(f"Cycles: {stats.total_cycles}  completed: {stats.completed}  "
          f"rejected transitions: {stats.transitions_rejected}  skipped: {stats.skipped}")
    print(f"Signals: {stats.signal_counts}")
    print(f"Outliers rejected: {engine.aggregator.outliers_rejected}")
    print(f"Position: {position.size} @ {position.average_price}  unrealized: {position.unrealized_pnl}")
    print(f"Transitions: {engine.get_state_info().recent_transitions}")
    print("=" * 80)


if __name__ == "__main__":
    main()
