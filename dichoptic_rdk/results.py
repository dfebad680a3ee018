"""Result persistence for the experiment.

:class:`ResultsStore` is the persistence sink handed to the experiment.  Every
``write`` lands in the row for its (block, trial) pair; :meth:`save` writes
the rows to CSV and the participant information to a JSON file next to it.
"""
from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


def _csv_value(value: Any) -> Any:
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True)
    return value


class ResultsStore:
    """Append-only key/value store keyed by (block number, trial number)."""

    def __init__(
        self,
        experiment_name: str,
        data_fields: List[str],
        directory: Path | str = "data",
        *,
        participant: str = "",
        session: str = "1",
    ) -> None:
        self.experiment_name = experiment_name
        self.data_fields = list(data_fields)
        self.directory = Path(directory)
        self.participant = participant
        self.session = session
        self.experiment_info: Dict[str, Any] = {}
        self._rows: Dict[Tuple[int, int], Dict[str, Any]] = {}
        self._closed = False
        self.saved_to: Optional[Path] = None

    # ------------------------------------------------------------------
    # Persistence sink
    # ------------------------------------------------------------------
    def write(self, block_number: int, trial_number: int, key: str, value: Any) -> None:
        if self._closed:
            logger.warning("Results already saved; dropping '%s' for trial %d", key, trial_number)
            return
        row = self._rows.setdefault((block_number, trial_number), {})
        row[key] = value

    def close(self) -> None:
        """Save once; later calls are no-ops."""

        if self._closed:
            return
        self.save()
        self._closed = True

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def rows(self) -> List[Dict[str, Any]]:
        return [dict(self._rows[key]) for key in sorted(self._rows)]

    def row(self, block_number: int, trial_number: int) -> Mapping[str, Any]:
        return self._rows.get((block_number, trial_number), {})

    # ------------------------------------------------------------------
    # File output
    # ------------------------------------------------------------------
    def _filename(self, suffix: str) -> Path:
        participant = self.participant or "unknown"
        return self.directory / f"{self.experiment_name}_{participant}_{self.session}{suffix}"

    def save(self) -> Path:
        """Write the CSV and JSON files and return the CSV path."""

        self.directory.mkdir(parents=True, exist_ok=True)
        filename = self._filename(".csv")
        with filename.open("w", newline="", encoding="utf-8") as csv_file:
            writer = csv.DictWriter(csv_file, fieldnames=self.data_fields, extrasaction="ignore")
            writer.writeheader()
            for row in self.rows:
                writer.writerow({key: _csv_value(value) for key, value in row.items()})

        info = {
            "experiment_name": self.experiment_name,
            "participant": self.participant,
            "session": self.session,
            "rows": len(self._rows),
            **self.experiment_info,
        }
        with filename.with_suffix(".json").open("w", encoding="utf-8") as info_file:
            json.dump(info, info_file, indent=2, default=str)

        self.saved_to = filename
        logger.info("Saved %d result rows to %s", len(self._rows), filename)
        return filename


__all__ = ["ResultsStore"]
