"""Translation of a registry snapshot into remote-write time series."""
import logging
from typing import Iterable, List, Optional

from rwpusher.errors import ExtractionError
from rwpusher.extract import extract_sample, now_millis
from rwpusher.series import MetricFamily, MetricSample, TimeSeries

logger = logging.getLogger(__name__)


def sample_to_timeseries(sample: MetricSample) -> TimeSeries:
    """Wrap one extracted sample as a single-point time series."""
    return TimeSeries(
        name=sample.metric_name,
        labels=sample.labels,
        samples=((sample.value, sample.timestamp_ms),),
    )


def metric_families_to_timeseries(
    families: Iterable[MetricFamily],
    now_ms: Optional[int] = None
) -> List[TimeSeries]:
    """
    Convert every sample of every family into its own time series.

    Samples without an explicit timestamp share one "now" taken at the start
    of the call. None samples are skipped. The first ExtractionError aborts
    the whole conversion and no partial result is returned.
    """
    if now_ms is None:
        now_ms = now_millis()

    series: List[TimeSeries] = []
    for family in families:
        if family is None:
            continue
        if not isinstance(family.name, str) or not family.name:
            raise ExtractionError(f"malformed family: invalid name {family.name!r}")
        samples = family.samples or ()
        if isinstance(samples, (str, bytes)) or not isinstance(samples, Iterable):
            raise ExtractionError(f"malformed family {family.name!r}: samples are not a sequence")
        for raw_sample in samples:
            if raw_sample is None:
                continue
            sample = extract_sample(family.type, raw_sample, now_ms=now_ms, family_name=family.name)
            series.append(sample_to_timeseries(sample))

    logger.debug(f"Translated snapshot into {len(series)} time series")
    return series
