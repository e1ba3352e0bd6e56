"""In-memory recommendation store keyed by workload.

Recommendations arrive as an ordered list of records (usually a JSON file
produced by a recommender). The store indexes them by workload key so that a
pod can be matched to the recommendation of the workload that owns it.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

import structlog
import yaml
from pydantic import ValidationError

from .models import (
    KeyScheme,
    MalformedInputError,
    Recommendation,
    RecommendationFileError,
)

logger = structlog.get_logger(__name__)

RawRecord = Union[Dict[str, Any], Recommendation]


def parse_recommendations(raw_records: Any) -> List[Recommendation]:
    """Decode raw records into Recommendation objects.

    Numeric values are not range-checked: zero and negative quantities load
    as-is.

    Raises:
        MalformedInputError: If the input is not a list of records of the
            expected shape
    """
    if isinstance(raw_records, (str, bytes)) or not isinstance(
        raw_records, Sequence
    ):
        raise MalformedInputError(
            f"Expected a list of recommendation records, got {type(raw_records).__name__}"
        )

    recommendations = []
    for index, raw in enumerate(raw_records):
        if isinstance(raw, Recommendation):
            recommendations.append(raw)
            continue
        if not isinstance(raw, dict):
            raise MalformedInputError(
                f"Record {index} is not an object: {type(raw).__name__}",
                index=index,
            )
        try:
            recommendations.append(Recommendation.model_validate(raw))
        except ValidationError as e:
            raise MalformedInputError(
                f"Record {index} is malformed: {e.errors()[0]['loc']} {e.errors()[0]['msg']}",
                index=index,
            ) from e

    return recommendations


def load_recommendations_file(path: Union[str, Path]) -> List[Recommendation]:
    """Read recommendation records from a JSON or YAML file.

    Args:
        path: File holding a list of recommendation records

    Returns:
        Decoded recommendations in file order

    Raises:
        RecommendationFileError: If the file cannot be read
        MalformedInputError: If the content cannot be decoded
    """
    file_path = Path(path)
    try:
        content = file_path.read_text()
    except OSError as e:
        raise RecommendationFileError(
            f"Cannot read recommendations file {file_path}: {e}", path=str(file_path)
        ) from e

    try:
        if file_path.suffix.lower() in (".yaml", ".yml"):
            raw_records = yaml.safe_load(content)
        else:
            raw_records = json.loads(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise MalformedInputError(
            f"Cannot decode recommendations file {file_path}: {e}"
        ) from e

    recommendations = parse_recommendations(raw_records)

    logger.info(
        "Loaded recommendations file",
        path=str(file_path),
        records=len(recommendations),
    )

    return recommendations


class RecommendationStore:
    """Read-only mapping from workload key to recommendation."""

    def __init__(
        self,
        recommendations: Dict[str, Recommendation],
        key_scheme: KeyScheme = KeyScheme.CONCATENATED,
    ):
        self._recommendations = dict(recommendations)
        self.key_scheme = key_scheme

    @classmethod
    def load(
        cls,
        raw_records: Sequence[RawRecord],
        key_scheme: KeyScheme = KeyScheme.CONCATENATED,
    ) -> "RecommendationStore":
        """Build a store from raw records.

        Later records win when two records share a workload key.

        Raises:
            MalformedInputError: If a record cannot be decoded
        """
        recommendations: Dict[str, Recommendation] = {}
        for rec in parse_recommendations(raw_records):
            key = rec.key(key_scheme)
            if key in recommendations:
                logger.warning(
                    "Duplicate workload key, keeping last recommendation",
                    key=key,
                )
            recommendations[key] = rec

        return cls(recommendations, key_scheme)

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        key_scheme: KeyScheme = KeyScheme.CONCATENATED,
    ) -> "RecommendationStore":
        """Build a store from a recommendations file."""
        return cls.load(load_recommendations_file(path), key_scheme)

    def lookup(self, key: str) -> Optional[Recommendation]:
        """Return the recommendation for a workload key, or None."""
        return self._recommendations.get(key)

    def keys(self) -> List[str]:
        return list(self._recommendations)

    def __len__(self) -> int:
        return len(self._recommendations)

    def __contains__(self, key: object) -> bool:
        return key in self._recommendations

    def __iter__(self) -> Iterator[Recommendation]:
        return iter(self._recommendations.values())
