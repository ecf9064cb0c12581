"""Extraction of single registry samples into MetricSample values."""
import math
import time
from typing import Any, Mapping, Optional

from rwpusher.errors import ExtractionError
from rwpusher.series import MetricSample, MetricType

SUMMARY_SCALAR_SUFFIXES = ("_sum", "_count", "_created")


def now_millis() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def timestamp_to_millis(timestamp: Any) -> int:
    """Convert a registry timestamp in seconds (float or Timestamp) to ms."""
    seconds = float(timestamp)
    if math.isnan(seconds) or math.isinf(seconds):
        raise ValueError(f"non-finite timestamp {timestamp!r}")
    return int(round(seconds * 1000))


def _check_labels(sample_name: str, labels: Any) -> Mapping[str, str]:
    if labels is None:
        return {}
    if not isinstance(labels, Mapping):
        raise ExtractionError(f"sample {sample_name!r}: labels must be a mapping, got {type(labels).__name__}")
    for key, value in labels.items():
        if not isinstance(key, str) or not key:
            raise ExtractionError(f"sample {sample_name!r}: invalid label name {key!r}")
        if key == "__name__":
            raise ExtractionError(f"sample {sample_name!r}: reserved label name '__name__'")
        if not isinstance(value, str):
            raise ExtractionError(f"sample {sample_name!r}: label {key!r} has non-string value {value!r}")
    return labels


def _check_type_fields(metric_type: MetricType, sample_name: str, labels: Mapping[str, str]):
    """Reject samples missing the labels their family type requires."""
    if metric_type is MetricType.HISTOGRAM:
        if sample_name.endswith("_bucket") and "le" not in labels:
            raise ExtractionError(f"histogram bucket {sample_name!r} has no 'le' label")
    elif metric_type is MetricType.SUMMARY:
        if not sample_name.endswith(SUMMARY_SCALAR_SUFFIXES) and "quantile" not in labels:
            raise ExtractionError(f"summary sample {sample_name!r} has no 'quantile' label")


def extract_sample(
    family_type: Any,
    raw_sample: Any,
    now_ms: Optional[int] = None,
    family_name: Optional[str] = None
) -> MetricSample:
    """
    Project one raw registry sample onto (name, labels, value, timestamp).

    Args:
        family_type: Type of the owning family (MetricType or registry type name)
        raw_sample: Object exposing name, labels, value and optionally timestamp
        now_ms: Timestamp used when the sample has none; defaults to wall-clock now
        family_name: Name of the owning family, checked as a prefix of the sample name

    Returns:
        The extracted MetricSample

    Raises:
        ExtractionError: if the sample does not have the fields its type claims
    """
    metric_type = MetricType.from_registry_type(family_type)
    if metric_type is None:
        raise ExtractionError(f"unknown metric type {family_type!r}")

    try:
        sample_name = raw_sample.name
        raw_labels = raw_sample.labels
        raw_value = raw_sample.value
    except AttributeError as e:
        raise ExtractionError(f"malformed {metric_type.value} sample: {e}") from e

    if not isinstance(sample_name, str) or not sample_name:
        raise ExtractionError(f"malformed {metric_type.value} sample: invalid name {sample_name!r}")
    if family_name is not None and not isinstance(family_name, str):
        raise ExtractionError(f"sample {sample_name!r} has an invalid family name {family_name!r}")
    if family_name and not sample_name.startswith(family_name):
        raise ExtractionError(f"sample {sample_name!r} does not belong to family {family_name!r}")

    labels = _check_labels(sample_name, raw_labels)
    _check_type_fields(metric_type, sample_name, labels)

    if raw_value is None or isinstance(raw_value, (str, bytes)):
        raise ExtractionError(f"sample {sample_name!r} has no numeric value")
    try:
        value = float(raw_value)
    except (TypeError, ValueError) as e:
        raise ExtractionError(f"sample {sample_name!r} has no numeric value: {e}") from e

    explicit_ts = getattr(raw_sample, "timestamp", None)
    if explicit_ts is not None:
        try:
            timestamp_ms = timestamp_to_millis(explicit_ts)
        except (TypeError, ValueError) as e:
            raise ExtractionError(f"sample {sample_name!r} has an invalid timestamp: {e}") from e
    elif now_ms is not None:
        timestamp_ms = now_ms
    else:
        timestamp_ms = now_millis()

    return MetricSample(
        metric_name=sample_name,
        labels=tuple(sorted(labels.items())),
        value=value,
        timestamp_ms=timestamp_ms,
    )
