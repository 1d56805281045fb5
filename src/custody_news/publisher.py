"""Publisher writing the ranked result set for the news widget."""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from .models import ResultSet
from .logger import get_logger


class PublishError(Exception):
    """Raised when the output record cannot be written."""
    pass


class Publisher:
    """Reads and atomically replaces the published JSON record."""

    def __init__(self, output_file: Path):
        """
        Initialize publisher.

        Args:
            output_file: Path of the JSON record read by the widget
        """
        self.output_file = Path(output_file)
        self.logger = get_logger()

    def load_previous(self) -> Optional[ResultSet]:
        """
        Load the currently published record.

        Returns:
            The previous ResultSet, or None if missing or unreadable
        """
        if not self.output_file.exists():
            self.logger.info(f"No previous record at {self.output_file}")
            return None

        try:
            with open(self.output_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            previous = ResultSet.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            self.logger.warning(f"Ignoring unreadable previous record {self.output_file}: {e}")
            return None

        skipped = len(data['items']) - previous.kept if 'items' in data else 0
        if skipped:
            self.logger.warning(f"Skipped {skipped} unreadable items in previous record")
        self.logger.info(f"Loaded previous record with {previous.kept} items")
        return previous

    def publish(self, result: ResultSet) -> Path:
        """
        Write the record atomically.

        The JSON is written to a temporary file in the target directory and
        moved over the target with ``os.replace``, so readers see either the
        old or the new record, never a partial one.

        Args:
            result: Result set to publish

        Returns:
            Path of the written record

        Raises:
            PublishError: If the record cannot be written
        """
        payload = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
        tmp_path = None

        try:
            self.output_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.output_file.name}.",
                suffix=".tmp",
                dir=self.output_file.parent
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.output_file)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PublishError(f"Failed to write {self.output_file}: {e}") from e

        self.logger.info(f"Wrote {result.kept} items to {self.output_file}")
        return self.output_file
