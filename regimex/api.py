"""
Decision Engine REST API

FastAPI interface for triggering cycles, querying state and administering
risk parameters, the strategy selector and the state lock.
"""

from fastapi import FastAPI, HTTPException, Query, status
from pydantic import BaseModel, Field
from typing import Optional, Union
from datetime import datetime
import logging

from regimex.config import EngineConfig
from regimex.controller.engine import DecisionEngine
from regimex.errors import ConfigurationError, UnknownStrategyError
from regimex.event_bus import EventType
from regimex.state.schemas import MarketState

LOG = logging.getLogger(__name__)

app = FastAPI(
    title="Regimex Decision Engine API",
    description="Market-state detection, validated transitions and risk-bounded execution",
    version="1.0.0"
)

# Global engine instance
_engine: Optional[DecisionEngine] = None


def get_engine() -> DecisionEngine:
    """Get or create engine instance"""
    global _engine
    if _engine is None:
        config = EngineConfig.from_env()
        logging.getLogger("regimex").setLevel(config.log_level)
        _engine = DecisionEngine(config=config)
        _engine.event_bus.start()
        LOG.info("Decision Engine initialized")
    return _engine


# ========================================
# REQUEST SCHEMAS
# ========================================

class StrategySwitchRequest(BaseModel):
    """Select the active detection strategy"""
    strategy_id: Union[str, int] = Field(..., description="Strategy id (e.g. attention_weighted) or legacy numeric selector")


class RiskUpdateRequest(BaseModel):
    """Partial update of persistent risk parameters"""
    max_position_size: Optional[int] = Field(None, gt=0)
    max_leverage: Optional[int] = Field(None, gt=0, description="Leverage ×100 (300 = 3x)")
    stop_loss_percent: Optional[int] = Field(None, gt=0, description="Basis points")
    max_daily_loss: Optional[int] = Field(None, gt=0)
    cooldown_period: Optional[float] = Field(None, ge=0.0, description="Seconds")


class StatusChangeRequest(BaseModel):
    reason: str = Field("operator request", description="Why the status is changing")
    reset_cycle_counter: bool = False


# ========================================
# LIFECYCLE
# ========================================

@app.on_event("startup")
async def startup_event():
    """Initialize engine on startup"""
    get_engine()
    LOG.info("Decision Engine API started")


@app.on_event("shutdown")
async def shutdown_event():
    """Flush pending events on shutdown"""
    if _engine is not None:
        _engine.event_bus.stop()
    LOG.info("Decision Engine API shutting down")


# ========================================
# HEALTH AND CONFIG
# ========================================

@app.get("/health")
async def health_check():
    """Engine status, lock status and component metrics"""
    try:
        engine = get_engine()
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "engine_health": engine.get_health(),
            "config_hash": engine.config_hash,
        }
    except Exception as e:
        LOG.error(f"Health check failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )


@app.get("/config")
async def get_config():
    engine = get_engine()
    return {
        "config": engine.config.to_dict(),
        "config_hash": engine.config_hash,
        "engine_version": "1.0.0",
    }


@app.get("/status")
async def get_status():
    engine = get_engine()
    return {
        "status": engine.get_status().value,
        "cycles": engine.get_cycle_count(),
        "lock_status": engine.state_manager.lock.status(),
    }


# ========================================
# DECISION CYCLE
# ========================================

# Sync handler; FastAPI runs it in the threadpool since a cycle blocks on the store
@app.post("/cycle")
def run_cycle():
    """
    Trigger one decision cycle.

    Always returns the cycle's DecisionRecord; skipped, contended and
    blocked cycles are reported through its outcome field.
    """
    engine = get_engine()
    try:
        record = engine.run_cycle()
    except Exception as e:
        LOG.error(f"Cycle trigger failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
    return record.to_dict()


@app.get("/decision/last")
async def get_last_decision():
    record = get_engine().get_last_decision()
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No decision recorded yet"
        )
    return record.to_dict()


# ========================================
# STATE
# ========================================

@app.get("/state")
async def get_state():
    return get_engine().get_state_info().to_dict()


@app.get("/transitions")
async def get_transitions():
    return {
        "transitions": [t.to_dict() for t in get_engine().get_transitions()]
    }


@app.get("/transition/validate")
async def validate_transition(
    from_state: str = Query(..., description="BULL, BEAR, SIDEWAYS or UNKNOWN"),
    to_state: str = Query(..., description="BULL, BEAR, SIDEWAYS or UNKNOWN"),
):
    """Whether a transition would be allowed now, and its strength"""
    try:
        source = MarketState(from_state.upper())
        target = MarketState(to_state.upper())
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    engine = get_engine()
    allowed, strength = engine.validate_transition(source, target)
    _, reason = engine.state_manager.check_transition(source, target)
    return {
        "from_state": source.value,
        "to_state": target.value,
        "allowed": allowed,
        "strength": strength,
        "reason": reason,
    }


# ========================================
# STRATEGY
# ========================================

@app.get("/strategy")
async def get_strategy():
    engine = get_engine()
    active = engine.get_active_strategy()
    return {
        "strategy_id": active,
        "name": engine.strategies.get_strategy_name(active),
        "config": engine.strategies.strategy_config(active),
    }


@app.get("/strategies")
async def list_strategies():
    return {"strategies": get_engine().strategies.available_strategies()}


@app.post("/strategy")
async def switch_strategy(request: StrategySwitchRequest):
    engine = get_engine()
    try:
        active = engine.switch_strategy(request.strategy_id)
    except UnknownStrategyError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return {"strategy_id": active, "name": engine.strategies.get_strategy_name(active)}


# ========================================
# TRADING
# ========================================

@app.get("/position")
async def get_position():
    engine = get_engine()
    return {
        "position": engine.get_position().to_dict(),
        "risk_parameters": engine.get_risk_parameters().to_dict(),
        "daily_pnl": engine.executor.get_daily_pnl(),
    }


@app.put("/admin/risk")
async def update_risk(request: RiskUpdateRequest):
    """Persist new risk parameters; they apply from the next cycle"""
    changes = {k: v for k, v in request.model_dump().items() if v is not None}
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No risk parameters supplied"
        )
    try:
        params = get_engine().update_risk_parameters(**changes)
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return {"risk_parameters": params.to_dict()}


# ========================================
# ADMINISTRATION
# ========================================

@app.post("/admin/unlock")
async def force_unlock():
    """Clear the state lock regardless of holder"""
    released = get_engine().force_unlock()
    return {"released": released}


@app.post("/admin/stop")
async def emergency_stop(request: StatusChangeRequest):
    """Enter MAINTENANCE; cycles are skipped until resumed"""
    new_status = get_engine().emergency_stop(request.reason)
    return {"status": new_status.value}


@app.post("/admin/resume")
async def resume(request: StatusChangeRequest):
    new_status = get_engine().resume(reset_cycle_counter=request.reset_cycle_counter)
    return {"status": new_status.value}


# ========================================
# MONITORING
# ========================================

@app.get("/statistics")
async def get_statistics():
    engine = get_engine()
    return {
        "engine": engine.get_statistics().to_dict(),
        "trading": engine.executor.get_stats().to_dict(),
        "strategy": engine.strategies.get_stats(),
        "aggregation": engine.aggregator.get_stats(),
        "signal_history": engine.get_signal_history(),
    }


@app.get("/errors")
async def get_errors():
    return {"errors": get_engine().get_error_history()}


@app.get("/events/metrics")
async def get_event_metrics():
    engine = get_engine()
    return {
        "metrics": engine.event_bus.get_metrics(),
        "recent": [e.to_dict() for e in engine.event_bus.recent_events(limit=20)],
    }


@app.get("/events/{event_type}")
async def get_events(event_type: str, limit: int = Query(50, ge=1, le=500)):
    try:
        kind = EventType(event_type.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown event type: {event_type}"
        )
    return {"events": [e.to_dict() for e in get_engine().event_bus.recent_events(kind, limit)]}
