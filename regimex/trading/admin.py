"""
Risk parameter administration.

RiskParameters are read by the executor on every cycle but written only
here, through an explicit administrative update.
"""

import logging
from typing import Optional

from regimex.errors import ConfigurationError, CorruptStateError
from regimex.event_bus import EventBus, EventType
from regimex.storage.records import dump_record, load_record, parse_legacy_risk_parameters
from regimex.storage.store import KeyValueStore
from regimex.trading.schemas import RiskParameters

LOG = logging.getLogger(__name__)

RECORD_KIND = "risk_parameters"


def risk_key(prefix: str = "trading") -> str:
    return f"{prefix}:risk"


def load_risk_parameters(store: KeyValueStore, key: str) -> RiskParameters:
    """Stored parameters, or defaults when absent or unreadable"""
    try:
        data = load_record(RECORD_KIND, store.get(key), legacy_parser=parse_legacy_risk_parameters)
        if data is None:
            return RiskParameters()
        params = RiskParameters.from_dict(data)
        params.validate()
        return params
    except (CorruptStateError, ConfigurationError, KeyError, ValueError) as e:
        LOG.error(f"Unusable stored risk parameters, using defaults: {e}")
        return RiskParameters()


class RiskParameterAdmin:
    """The only writer of RiskParameters"""

    def __init__(self, store: KeyValueStore, key_prefix: str = "trading", event_bus: Optional[EventBus] = None):
        self.store = store
        self.key = risk_key(key_prefix)
        self.event_bus = event_bus

    def get(self) -> RiskParameters:
        return load_risk_parameters(self.store, self.key)

    def update(self, **changes) -> RiskParameters:
        """
        Apply field changes and persist.

        Raises:
            ConfigurationError: unknown field or invalid resulting parameters
        """
        current = self.get().to_dict()
        unknown = set(changes) - set(current)
        if unknown:
            raise ConfigurationError(f"Unknown risk parameters: {sorted(unknown)}")
        current.update({k: v for k, v in changes.items() if v is not None})
        params = RiskParameters.from_dict(current)
        params.validate()

        self.store.set(self.key, dump_record(RECORD_KIND, params.to_dict()))
        LOG.info(f"Risk parameters updated: {changes}")
        if self.event_bus is not None:
            self.event_bus.emit(EventType.RISK_PARAMETERS_UPDATED, **params.to_dict())
        return params
