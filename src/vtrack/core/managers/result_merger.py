"""Dedup guard and result merger for completed variant jobs.

The merger owns the processed set and the merged results of one batch. Both
are only ever touched inside `accept`, which does not await: when it is called
from the aggregator actor, "check membership, then append" cannot interleave
with another report.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from pydantic import ValidationError

from vtrack.core.exceptions import ResultParseError
from vtrack.core.models.variant import MergedVariant, Variant
from vtrack.core.settings import logger


class MergeOutcome(StrEnum):
    merged = "merged"
    duplicate = "duplicate"
    unparseable = "unparseable"


def _decode(job_id: str, raw: Any, what: str) -> Any:
    """Payloads arrive either as JSON text or already decoded."""
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ResultParseError(job_id, f"{what} is not valid JSON", diagnostic=str(exc)) from exc
    return raw


def parse_variants(job_id: str, schema: Any) -> List[Variant]:
    """Parse a `variantsSchema` value (text or object) into variants."""
    schema = _decode(job_id, schema, "variantsSchema")
    if not isinstance(schema, dict):
        raise ResultParseError(job_id, "variantsSchema is not an object")
    raw_variants = schema.get("variants")
    if not isinstance(raw_variants, list) or not raw_variants:
        raise ResultParseError(job_id, "variantsSchema holds no variants")
    try:
        return [Variant.model_validate(item) for item in raw_variants]
    except ValidationError as exc:
        raise ResultParseError(job_id, "variant does not match the variant schema", diagnostic=str(exc)) from exc


def parse_variant(job_id: str, result: Any) -> Variant:
    """Extract the single variant a completed job produced.

    Accepts `{"variantsSchema": ...}` (the generator's format) as well as a
    bare `{"variants": [...]}`; the first variant is the job's artifact.
    """
    if result is None:
        raise ResultParseError(job_id, "completed job carries no result")
    data = _decode(job_id, result, "result")
    if not isinstance(data, dict):
        raise ResultParseError(job_id, "result is not an object")
    if "variantsSchema" in data:
        schema = data["variantsSchema"]
    elif "variants" in data:
        schema = data
    else:
        raise ResultParseError(job_id, "result has no variantsSchema")
    return parse_variants(job_id, schema)[0]


class ResultMerger:
    """Merges each completed job's variant into the batch results at most once.

    Not thread-safe; a batch's merger is driven by its aggregator actor only.
    """

    def __init__(self) -> None:
        self._processed: Set[str] = set()
        self._merged: List[MergedVariant] = []
        self._by_job: Dict[str, Variant] = {}
        self._parse_failures: Dict[str, str] = {}

    def accept(self, job_id: str, result: Any) -> MergeOutcome:
        if job_id in self._processed:
            logger.debug("[merge] duplicate completion ignored job_id=%s", job_id)
            return MergeOutcome.duplicate

        # Marked before parsing: a malformed payload is never retried
        self._processed.add(job_id)
        try:
            variant = parse_variant(job_id, result)
        except ResultParseError as exc:
            self._parse_failures[job_id] = exc.reason
            logger.warning("[merge] %s diagnostic=%s", exc.message, exc.diagnostic)
            return MergeOutcome.unparseable

        self._merged.append(MergedVariant(job_id=job_id, variant=variant))
        self._by_job[job_id] = variant
        logger.debug(
            "[merge] merged job_id=%s label=%s position=%s",
            job_id,
            variant.variant_label,
            len(self._merged) - 1,
        )
        return MergeOutcome.merged

    def extend_direct(self, variants: Sequence[Variant]) -> None:
        """Append variants that arrived without a job (direct tool result)."""
        self._merged.extend(MergedVariant(variant=v) for v in variants)

    def is_processed(self, job_id: str) -> bool:
        return job_id in self._processed

    def variant_for(self, job_id: str) -> Optional[Variant]:
        return self._by_job.get(job_id)

    def parse_failure(self, job_id: str) -> Optional[str]:
        return self._parse_failures.get(job_id)

    @property
    def merged(self) -> Tuple[MergedVariant, ...]:
        return tuple(self._merged)
