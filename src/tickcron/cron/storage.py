"""JSON file persistence for cron jobs.

This module handles loading and saving jobs, including their execution
history, to a JSON file guarded by a file lock.
"""

import json
import logging
from pathlib import Path

from filelock import FileLock
from pydantic import BaseModel, Field

from tickcron.cron.types import CronJob

logger = logging.getLogger(__name__)

# Storage format version; files from newer versions are rejected
STORAGE_VERSION = 1


class CronStorageData(BaseModel):
    """Root structure of the storage file.

    Attributes:
        version: Storage format version.
        jobs: Stored jobs, in insertion order.
    """

    version: int = Field(default=STORAGE_VERSION, description="Storage format version")
    jobs: list[CronJob] = Field(default_factory=list, description="Stored jobs")


class CronStorage:
    """JSON file-based storage for cron jobs.

    Example:
        storage = CronStorage("/path/to/jobs.json")
        storage.add(job)
        jobs = storage.load()
    """

    def __init__(
        self,
        path: str | Path,
        create_if_missing: bool = True,
    ) -> None:
        """Initialize the storage.

        Args:
            path: Path to the JSON storage file.
            create_if_missing: Create the file if it doesn't exist.
        """
        self._path = Path(path)
        self._lock = FileLock(str(self._path.with_suffix(".lock")))
        self._create_if_missing = create_if_missing

    @property
    def path(self) -> Path:
        """Get the storage file path."""
        return self._path

    def _ensure_file_exists(self) -> None:
        if not self._path.exists():
            if self._create_if_missing:
                self._write_data(CronStorageData())
                logger.info(f"Created cron storage file: {self._path}")
            else:
                raise FileNotFoundError(f"Cron storage file not found: {self._path}")

    def _read_data(self) -> CronStorageData:
        """Read and parse the storage file.

        Raises:
            FileNotFoundError: If the file doesn't exist and create_if_missing is False.
            json.JSONDecodeError: If the file contains invalid JSON.
            ValueError: If the file was written by a newer storage format.
        """
        self._ensure_file_exists()

        content = self._path.read_text(encoding="utf-8")
        if not content.strip():
            return CronStorageData()

        data = json.loads(content)

        version = data.get("version", STORAGE_VERSION)
        if version > STORAGE_VERSION:
            raise ValueError(
                f"Cron storage {self._path} has version {version}, "
                f"newest supported is {STORAGE_VERSION}"
            )

        return CronStorageData.model_validate(data)

    def _write_data(self, data: CronStorageData) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data.model_dump(mode="json"), indent=2)
        self._path.write_text(content, encoding="utf-8")

    def load(self) -> list[CronJob]:
        """Load all jobs from storage.

        Returns:
            List of jobs.
        """
        with self._lock:
            data = self._read_data()
            logger.debug(f"Loaded {len(data.jobs)} cron jobs from {self._path}")
            return data.jobs

    def add(self, job: CronJob) -> None:
        """Add a new job to storage.

        Raises:
            ValueError: If a job with the same ID already exists.
        """
        with self._lock:
            data = self._read_data()

            if any(existing.id == job.id for existing in data.jobs):
                raise ValueError(f"Job with ID '{job.id}' already exists")

            data.jobs.append(job)
            self._write_data(data)
            logger.debug(f"Stored cron job: {job.name} ({job.id})")

    def update(self, job: CronJob) -> bool:
        """Update an existing job.

        Returns:
            True if the job was found and updated.
        """
        with self._lock:
            data = self._read_data()

            for i, existing in enumerate(data.jobs):
                if existing.id == job.id:
                    data.jobs[i] = job
                    self._write_data(data)
                    return True

            return False

    def remove(self, job_id: str) -> bool:
        """Remove a job from storage.

        Returns:
            True if the job was found and removed.
        """
        with self._lock:
            data = self._read_data()
            original_count = len(data.jobs)

            data.jobs = [j for j in data.jobs if j.id != job_id]

            if len(data.jobs) < original_count:
                self._write_data(data)
                logger.debug(f"Removed cron job: {job_id}")
                return True

            return False

    def clear(self) -> int:
        """Remove all jobs from storage.

        Returns:
            Number of jobs removed.
        """
        with self._lock:
            data = self._read_data()
            count = len(data.jobs)
            self._write_data(CronStorageData())
            logger.info(f"Cleared {count} cron jobs")
            return count
