"""One-shot import of the legacy ``leaderboard.json`` into the database.

Split in two: ``canonicalize_legacy_entries`` is a pure transform from the
legacy records to deduplicated rows, and ``migrate_legacy_leaderboard``
applies them. Applying is guarded twice, by a marker holding the digest of
every file already imported and by a unique ``legacy_key`` per row, so running
it again never duplicates entries.
"""

import hashlib
import json
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List

from sqlalchemy.exc import SQLAlchemyError

from carguessr import db
from carguessr.errors import InvalidEntry, MigrationError, PersistenceFailure
from carguessr.models import SCHEMA_VERSION, DatabaseMetadata, LeaderboardEntry, utcnow
from carguessr.services.game.settings import DIFFICULTIES, GAME_MODES
from carguessr.validation import sanitize_name

from .store import LeaderboardStore

logger = logging.getLogger(__name__)

LEGACY_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LEGACY_DEFAULT_DIFFICULTY = 'hard'
MIGRATION_MARKER_KEY = 'legacy_leaderboard_migration'
SCHEMA_VERSION_KEY = 'schema_version'


@dataclass(frozen=True)
class CanonicalEntry:
    name: str
    score: int
    game_mode: str
    difficulty: str
    created_at: datetime
    legacy_key: str


def _parse_date(value) -> datetime:
    if not isinstance(value, str) or not value:
        raise ValueError("missing date")
    try:
        return datetime.strptime(value, LEGACY_DATE_FORMAT)
    except ValueError:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed


def legacy_key(name: str, score, game_mode: str, date: str) -> str:
    raw = json.dumps([name, score, game_mode, date], ensure_ascii=False)
    return hashlib.sha256(raw.encode('utf-8')).hexdigest()


def canonicalize_legacy_entries(records: Iterable, default_difficulty: str = LEGACY_DEFAULT_DIFFICULTY) -> List[CanonicalEntry]:
    """Validate and deduplicate legacy records.

    Records identical in name, score, mode and date collapse to one, first
    occurrence wins. Any malformed record fails the whole batch.
    """
    seen = set()
    out = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise MigrationError(f"Entry {index} is not an object")
        name, score = record.get('name'), record.get('score')
        game_mode, date = record.get('gameMode'), record.get('date')
        difficulty = record.get('difficulty') or default_difficulty
        if isinstance(score, bool) or not isinstance(score, int) or score < 0:
            raise MigrationError(f"Entry {index} has an invalid score")
        if game_mode not in GAME_MODES:
            raise MigrationError(f"Entry {index} has an unknown game mode")
        if difficulty not in DIFFICULTIES:
            raise MigrationError(f"Entry {index} has an unknown difficulty")
        try:
            clean_name = sanitize_name(name, max_length=64)
        except InvalidEntry as exc:
            raise MigrationError(f"Entry {index}: {exc.message}") from exc
        try:
            created_at = _parse_date(date)
        except ValueError as exc:
            raise MigrationError(f"Entry {index} has an invalid date") from exc

        key = legacy_key(name, score, game_mode, date)
        if key in seen:
            continue
        seen.add(key)
        out.append(CanonicalEntry(clean_name, score, game_mode, difficulty, created_at, key))
    return out


def read_legacy_file(raw: bytes) -> list:
    try:
        payload = json.loads(raw.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MigrationError("Legacy leaderboard file is not valid JSON") from exc
    entries = payload.get('entries') if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        raise MigrationError("Legacy leaderboard file has no entries list")
    return entries


def _imported_digests() -> list:
    marker = DatabaseMetadata.get_value(MIGRATION_MARKER_KEY)
    if not marker:
        return []
    try:
        digests = json.loads(marker)
    except ValueError:
        return []
    return digests if isinstance(digests, list) else []


def backup_legacy_file(source_path: str, now: datetime = None) -> str:
    """Copy the legacy file next to itself under a timestamped backup folder."""
    stamp = (now or utcnow()).strftime('%Y%m%d%H%M%S')
    backup_dir = os.path.join(os.path.dirname(os.path.abspath(source_path)), f"backup_{stamp}")
    os.makedirs(backup_dir, exist_ok=True)
    target = os.path.join(backup_dir, os.path.basename(source_path))
    shutil.copy2(source_path, target)
    return target


def migrate_legacy_leaderboard(store: LeaderboardStore, source_path: str) -> int:
    """Import ``source_path`` into the leaderboard; returns rows written.

    All-or-nothing: a malformed file or failed commit leaves the store as it
    was. The source file is never deleted.
    """
    try:
        with open(source_path, 'rb') as fh:
            raw = fh.read()
    except OSError as exc:
        logger.error(f"[migrate] cannot read {source_path}: {exc}")
        raise MigrationError(f"Cannot read legacy leaderboard file {os.path.basename(source_path)}") from exc

    digest = hashlib.sha256(raw).hexdigest()
    try:
        canonical = canonicalize_legacy_entries(read_legacy_file(raw))
    except MigrationError as exc:
        logger.error(f"[migrate] aborted, {source_path} is malformed: {exc.message}")
        raise

    with store.write_lock:
        digests = _imported_digests()
        if digest in digests:
            logger.info(f"[migrate] {source_path} already imported (sha256={digest[:12]}), skipping")
            return 0

        keys = [c.legacy_key for c in canonical]
        existing = set()
        if keys:
            existing = {
                k for (k,) in db.session.query(LeaderboardEntry.legacy_key)
                .filter(LeaderboardEntry.legacy_key.in_(keys))
            }
        fresh = [c for c in canonical if c.legacy_key not in existing]

        try:
            backup_path = backup_legacy_file(source_path)
        except OSError as exc:
            logger.error(f"[migrate] backup of {source_path} failed: {exc}")
            raise MigrationError("Could not back up the legacy leaderboard file") from exc

        for c in fresh:
            db.session.add(LeaderboardEntry(
                name=c.name,
                score=c.score,
                game_mode=c.game_mode,
                difficulty=c.difficulty,
                created_at=c.created_at,
                legacy_key=c.legacy_key,
            ))
        DatabaseMetadata.set_value(MIGRATION_MARKER_KEY, json.dumps(digests + [digest]))
        DatabaseMetadata.set_value(SCHEMA_VERSION_KEY, SCHEMA_VERSION)
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f"[migrate] commit failed, nothing imported: {exc}")
            raise PersistenceFailure("Leaderboard migration failed, nothing was imported") from exc

    logger.info(
        f"[migrate] imported={len(fresh)} duplicates={len(canonical) - len(fresh)} "
        f"source={source_path} backup={backup_path}"
    )
    return len(fresh)
