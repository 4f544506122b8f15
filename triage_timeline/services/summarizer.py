"""Bundle summarization entry point.

``summarize_bundle`` runs the whole pipeline for one bundle:

1. ``ingest``  - classify bundle entries (the only step that can fail)
2. ``extract`` - critical overview
3. ``build``   - ordered timeline
4. ``assemble`` - stamp ``generated_at`` and combine

The clock is read once per call and the same instant is used for every
recency window and for ``generated_at``. Nothing is kept between calls, so
the function is safe to call concurrently from any number of threads.
"""

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime

from triage_timeline.models.snapshot import (
    CriticalSummary,
    SummarizeConfig,
    TimelineEvent,
    TimelineSnapshot,
)
from triage_timeline.services.critical import extract
from triage_timeline.services.ingestor import MalformedBundle, ingest
from triage_timeline.services.timeline_builder import build

logger = logging.getLogger(__name__)


def assemble(
    critical: CriticalSummary,
    events: list[TimelineEvent],
    generated_at: datetime | None = None,
) -> TimelineSnapshot:
    return TimelineSnapshot(
        generated_at=generated_at or datetime.now(UTC),
        critical=critical,
        events=events,
    )


def resolve_config(config: SummarizeConfig | Mapping | None) -> SummarizeConfig:
    if config is None:
        return SummarizeConfig()
    if isinstance(config, SummarizeConfig):
        return config
    options = {
        key: value
        for key, value in config.items()
        if key in SummarizeConfig.model_fields and value is not None
    }
    return SummarizeConfig(**options)


def summarize_bundle(
    bundle,
    config: SummarizeConfig | Mapping | None = None,
    *,
    now: datetime | None = None,
) -> TimelineSnapshot:
    """Summarize a FHIR Bundle into a TimelineSnapshot.

    Args:
        bundle: Parsed JSON value expected to be a FHIR Bundle. Never modified.
        config: SummarizeConfig, a mapping of its options, or None for defaults.
        now: Generation time override; defaults to the current UTC time.

    Raises:
        MalformedBundle: the input is not a Bundle with an ``entry`` list.
            No partial snapshot is produced.
    """
    settings = resolve_config(config)
    generated_at = now or datetime.now(UTC)
    if generated_at.tzinfo is None:
        generated_at = generated_at.replace(tzinfo=UTC)
    generated_at = generated_at.astimezone(UTC)

    classified = ingest(bundle)
    critical = extract(classified, settings, generated_at)
    events = build(classified, settings, generated_at)
    return assemble(critical, events, generated_at)


def summarize_bundle_json(
    text: str | bytes,
    config: SummarizeConfig | Mapping | None = None,
    *,
    now: datetime | None = None,
) -> TimelineSnapshot:
    """Same as ``summarize_bundle`` but starting from JSON text."""
    try:
        bundle = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.debug("Bundle is not valid JSON: %s", e)
        raise MalformedBundle(f"Bundle is not valid JSON: {e}") from e
    return summarize_bundle(bundle, config, now=now)
