"""Consolidation of scattered per-checkout stores into the canonical store.

Earlier tool instances kept a private ``data/pdl.sqlite`` next to each
checkout. At start-up every such store found near the working directory is
merged into the canonical store exactly once per distinct content snapshot,
validated, and only then retired.
"""
import hashlib
import json
import logging
import os
import socket
import time
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import inspect as sa_inspect, select

from . import crud, models
from .columns import TeamComposition
from .config import Settings
from .database import build_engine, read_only_url
from .errors import PDLError
from .models import CONSOLIDATED_MODELS, MigrationRecord, MigrationStatus
from .ordering import PHASE_SCOPE, PROJECT_SCOPE, TASK_SCOPE, resequence
from .schemas import ConsolidationReport
from .store import Store

logger = logging.getLogger("pdl-core.consolidation")

Snapshot = dict[str, list[dict[str, Any]]]

# Fields compared row by row after the merge
CRITICAL_FIELDS: dict[str, tuple[str, ...]] = {
    "repositories": ("description", "team_composition"),
    "projects": ("name", "objective"),
    "phases": ("name", "current_step"),
    "steps": ("status",),
}

VALIDATION_PASSED = "validation_passed"
LOAD_CHUNK_SIZE = 500


def _json_default(value: Any) -> Any:
    if isinstance(value, TeamComposition):
        return value.to_json()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Cannot serialize {type(value).__name__}")


def _comparable(value: Any) -> Any:
    if isinstance(value, TeamComposition):
        return value.to_json()
    if isinstance(value, Enum):
        return value.value
    return value


def content_hash(snapshot: Snapshot) -> str:
    """SHA-256 over the canonical JSON form of a snapshot (sorted keys)."""
    canonical = json.dumps(snapshot, sort_keys=True, separators=(",", ":"), default=_json_default)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _pid_alive(pid: int) -> bool:
    try:
        # Signal 0 checks existence without sending anything
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except (OverflowError, ValueError):
        return False
    return True


class MigrationLock:
    """
    Advisory lock file created atomically with the holder's pid, host and time.

    An existing lock is only taken over when it is provably stale: written on
    this host, by a process that no longer runs, longer ago than
    ``stale_after_seconds``. Anything unreadable counts as held.
    """

    def __init__(self, path: Path, stale_after_seconds: int):
        self.path = path
        self.stale_after_seconds = stale_after_seconds
        self._held = False

    def acquire(self) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self._create():
            return True
        if not self.is_stale():
            holder = self.read_holder()
            logger.info(f"Migration lock {self.path} held by {holder or 'unknown holder'}; skipping")
            return False

        logger.warning(f"Removing stale migration lock {self.path}")
        self.path.unlink(missing_ok=True)
        return self._create()

    def _create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        holder = {"pid": os.getpid(), "hostname": socket.gethostname(), "timestamp": time.time()}
        with os.fdopen(fd, "w") as f:
            json.dump(holder, f)
        self._held = True
        return True

    def read_holder(self) -> Optional[dict]:
        try:
            holder = json.loads(self.path.read_text())
        except (OSError, ValueError):
            return None
        return holder if isinstance(holder, dict) else None

    def is_stale(self) -> bool:
        holder = self.read_holder()
        if holder is None:
            return False
        pid, hostname, timestamp = holder.get("pid"), holder.get("hostname"), holder.get("timestamp")
        if not isinstance(pid, int) or not isinstance(timestamp, (int, float)):
            return False
        if hostname != socket.gethostname():
            return False
        if _pid_alive(pid):
            return False
        return time.time() - timestamp > self.stale_after_seconds

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False


class ConsolidationService:
    """
    Merge legacy stores into the canonical store.

    ``run()`` never raises: every per-source failure is recorded in the
    migration ledger and the next source is processed.
    """

    def __init__(self, store: Store, settings: Settings):
        self.store = store
        self.settings = settings

    def run(self) -> ConsolidationReport:
        report = ConsolidationReport()
        lock = MigrationLock(self.settings.lock_path, self.settings.lock_stale_after_seconds)
        try:
            if not lock.acquire():
                return report
        except OSError as e:
            logger.error(f"Could not create migration lock {lock.path}: {e}")
            return report

        report.lock_acquired = True
        try:
            sources = self.discover_sources()
            report.sources_found = [str(source) for source in sources]
            for source in sources:
                outcome = self.consolidate_source(source)
                getattr(report, outcome).append(str(source))
        except Exception as e:
            logger.error(f"Consolidation run aborted: {e}", exc_info=True)
        finally:
            lock.release()

        if report.sources_found:
            logger.info(
                f"Consolidation finished: {len(report.migrated)} migrated, "
                f"{len(report.skipped)} skipped, {len(report.failed)} failed"
            )
        return report

    def discover_sources(self) -> list[Path]:
        """Legacy store files in the search root and its nearest ancestors."""
        canonical = self.settings.database_path.resolve()
        directory = self.settings.search_root.resolve()
        found: list[Path] = []

        for _ in range(self.settings.consolidation_search_depth + 1):
            candidate = directory / self.settings.legacy_store_relpath
            if candidate.is_file():
                resolved = candidate.resolve()
                if resolved != canonical and resolved not in found:
                    found.append(resolved)
            if directory.parent == directory:
                break
            directory = directory.parent

        logger.debug(f"Discovered {len(found)} legacy store(s)")
        return found

    def consolidate_source(self, source: Path) -> str:
        """Process one source; returns ``migrated``, ``skipped`` or ``failed``."""
        digest = ""
        try:
            snapshot = self.extract(source)
            digest = content_hash(snapshot)

            if self.already_migrated(source, digest):
                logger.info(f"Skipping {source}: content {digest[:12]} already migrated")
                return "skipped"
            if not snapshot["repositories"] and not snapshot["projects"]:
                logger.info(f"Skipping {source}: no repositories or projects")
                return "skipped"

            self.merge(snapshot, source, digest)
            problem = self.validate(snapshot)
            if problem:
                logger.warning(f"Validation failed for {source}, keeping it: {problem}")
                self.record(source, digest, MigrationStatus.FAILED, problem)
                return "failed"

            self.retire(source)
            self.record(source, digest, MigrationStatus.COMPLETED, VALIDATION_PASSED)
            logger.info(f"Migrated {source} into {self.settings.database_path}")
            return "migrated"
        except Exception as e:
            logger.error(f"Failed to consolidate {source}: {e}", exc_info=True)
            try:
                self.record(source, digest, MigrationStatus.FAILED, f"error: {e}")
            except PDLError as record_error:
                logger.error(f"Could not record failure for {source}: {record_error}")
            return "failed"

    def extract(self, source: Path) -> Snapshot:
        """Read every known entity table of ``source`` in one read-only pass."""
        engine = build_engine(read_only_url(source))
        snapshot: Snapshot = {}
        try:
            inspector = sa_inspect(engine)
            present = set(inspector.get_table_names())
            with engine.connect() as connection:
                for model in CONSOLIDATED_MODELS:
                    table = model.__table__
                    if table.name not in present:
                        snapshot[table.name] = []
                        continue
                    source_columns = {column["name"] for column in inspector.get_columns(table.name)}
                    columns = [column for column in table.columns if column.name in source_columns]
                    primary_key = list(table.primary_key.columns)
                    result = connection.execute(select(*columns).order_by(*primary_key))
                    snapshot[table.name] = [
                        {column.name: row._mapping[column] for column in columns}
                        for row in result
                    ]
        finally:
            engine.dispose()
        return snapshot

    def already_migrated(self, source: Path, digest: str) -> bool:
        with self.store.read() as db:
            record = (
                db.query(MigrationRecord)
                .filter(
                    MigrationRecord.source_path == str(source),
                    MigrationRecord.content_hash == digest,
                    MigrationRecord.status == MigrationStatus.COMPLETED,
                )
                .first()
            )
            return record is not None

    def merge(self, snapshot: Snapshot, source: Path, digest: str) -> None:
        """Upsert every row by primary key, stamped with its source, in one transaction, then close ordering gaps."""
        provenance = {"migrated_from": str(source), "migrated_at": models.utcnow(), "migrated_hash": digest}
        with self.store.transaction() as db:
            for model in CONSOLIDATED_MODELS:
                table = model.__table__
                mapper = sa_inspect(model)
                for row in snapshot[table.name]:
                    values = {
                        mapper.get_property_by_column(table.c[name]).key: value
                        for name, value in row.items()
                    }
                    values.update(provenance)
                    db.merge(model(**values))
            db.flush()

            repository_ids = {row["repository_id"] for row in snapshot["projects"]}
            project_ids = {row["project_id"] for row in snapshot["phases"]}
            task_parents = {(row["phase_id"], row["step_number"]) for row in snapshot["tasks"]}
            for repository_id in sorted(repository_ids):
                resequence(db, PROJECT_SCOPE, (repository_id,))
                crud.recompute_overall_progress(db, repository_id)
            for project_id in sorted(project_ids):
                resequence(db, PHASE_SCOPE, (project_id,))
            for parent in sorted(task_parents):
                resequence(db, TASK_SCOPE, parent)

        counts = ", ".join(f"{len(rows)} {name}" for name, rows in snapshot.items() if rows)
        logger.debug(f"Merged {counts}")

    def validate(self, snapshot: Snapshot) -> Optional[str]:
        """
        Re-read the migrated keys and compare counts and critical fields.

        Returns:
            A diagnostic string on mismatch, None when the merge is intact
        """
        problems: list[str] = []
        with self.store.read() as db:
            for model in CONSOLIDATED_MODELS:
                table = model.__table__
                rows = snapshot[table.name]
                if not rows:
                    continue
                ids = [row["id"] for row in rows]
                found: dict[Any, Any] = {}
                for start in range(0, len(ids), LOAD_CHUNK_SIZE):
                    chunk = ids[start:start + LOAD_CHUNK_SIZE]
                    found.update({obj.id: obj for obj in db.query(model).filter(model.id.in_(chunk))})
                if len(found) != len(set(ids)):
                    problems.append(f"{table.name}: expected {len(set(ids))} rows, found {len(found)}")

                mapper = sa_inspect(model)
                for row in rows:
                    obj = found.get(row["id"])
                    if obj is None:
                        continue
                    for name in CRITICAL_FIELDS.get(table.name, ()):
                        if name not in row:
                            continue
                        key = mapper.get_property_by_column(table.c[name]).key
                        if _comparable(getattr(obj, key)) != _comparable(row[name]):
                            problems.append(f"{table.name}.{name} differs for {row['id']}")
        return "; ".join(problems) or None

    def retire(self, source: Path) -> None:
        """Delete the source store and leave a marker saying where its data went."""
        source.unlink()
        for suffix in ("-wal", "-shm", "-journal"):
            Path(f"{source}{suffix}").unlink(missing_ok=True)

        marker = source.parent / self.settings.migrated_marker_name
        marker.write_text(json.dumps({
            "migrated_at": models.utcnow().isoformat(),
            "migrated_to": str(self.settings.database_path),
            "original_db": str(source),
        }, indent=2))

    def record(self, source: Path, digest: str, status: MigrationStatus, validation_result: str) -> None:
        with self.store.transaction() as db:
            db.add(MigrationRecord(
                source_path=str(source),
                content_hash=digest,
                status=status,
                validation_result=validation_result,
            ))
