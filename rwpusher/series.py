"""Data structures for snapshot samples and remote-write time series."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple


class MetricType(str, Enum):
    """Metric family type as understood by the translator."""
    COUNTER = "counter"
    GAUGE = "gauge"
    SUMMARY = "summary"
    HISTOGRAM = "histogram"
    UNTYPED = "untyped"

    @classmethod
    def from_registry_type(cls, typ: Any) -> Optional["MetricType"]:
        """Map a registry type name onto a MetricType, or None if unknown."""
        if isinstance(typ, cls):
            return typ
        if not isinstance(typ, str):
            return None
        # Same folding the text exposition format applies
        aliases = {
            "unknown": cls.UNTYPED,
            "info": cls.GAUGE,
            "stateset": cls.GAUGE,
            "gaugehistogram": cls.HISTOGRAM,
        }
        if typ in aliases:
            return aliases[typ]
        try:
            return cls(typ)
        except ValueError:
            return None


class ErrorKind(str, Enum):
    """Pipeline stage a push cycle failed in."""
    GATHER = "gather"
    EXTRACTION = "extraction"
    ENCODE = "encode"
    COMPRESS = "compress"
    TRANSPORT = "transport"
    REMOTE_REJECTED = "remote_rejected"


class PusherState(str, Enum):
    IDLE = "idle"
    PUSHING = "pushing"
    STOPPED = "stopped"


@dataclass
class MetricFamily:
    """A named group of raw registry samples sharing a type."""
    name: str
    type: Any
    samples: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class MetricSample:
    """One extracted observation with its labels sorted by key."""
    metric_name: str
    labels: Tuple[Tuple[str, str], ...]
    value: float
    timestamp_ms: int


@dataclass(frozen=True)
class TimeSeries:
    """A remote-write record: label set plus (value, timestamp_ms) points."""
    name: str
    labels: Tuple[Tuple[str, str], ...]
    samples: Tuple[Tuple[float, int], ...]

    def wire_labels(self) -> List[Tuple[str, str]]:
        """Full label set as sent on the wire, sorted by name."""
        return sorted([("__name__", self.name), *self.labels])

    def label_key(self) -> str:
        """Generate a stable key from the wire labels."""
        return ",".join(f"{k}={v}" for k, v in self.wire_labels())


@dataclass
class PushOutcome:
    """Result of a single push cycle."""
    success: bool
    series_count: int = 0
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    duration_s: float = 0.0
