import json
import os

import pytest

from carguessr.errors import MigrationError
from carguessr.models import DatabaseMetadata, LeaderboardEntry
from carguessr.services.leaderboard.migration import (
    MIGRATION_MARKER_KEY,
    SCHEMA_VERSION_KEY,
    canonicalize_legacy_entries,
)

LEGACY_ENTRIES = [
    {'name': 'Alice', 'score': 12, 'gameMode': 'streak', 'date': '2024-03-01 10:00:00'},
    {'name': 'Bob', 'score': 4100, 'gameMode': 'zero', 'date': '2024-03-02 11:30:00', 'difficulty': 'easy'},
    {'name': 'Alice', 'score': 12, 'gameMode': 'streak', 'date': '2024-03-01 10:00:00'},
]


def _write(path, entries):
    path.write_text(json.dumps({'entries': entries}), encoding='utf-8')
    return str(path)


def test_canonicalize_dedupes_and_defaults_difficulty():
    rows = canonicalize_legacy_entries(LEGACY_ENTRIES)
    assert [(r.name, r.score, r.game_mode, r.difficulty) for r in rows] == [
        ('Alice', 12, 'streak', 'hard'),
        ('Bob', 4100, 'zero', 'easy'),
    ]
    assert rows[0].created_at.year == 2024


def test_canonicalize_accepts_iso_dates():
    rows = canonicalize_legacy_entries([
        {'name': 'Cara', 'score': 3, 'gameMode': 'streak', 'date': '2024-05-01T08:00:00+01:00'},
    ])
    assert rows[0].created_at.hour == 7


@pytest.mark.parametrize('bad', [
    {'name': 'Alice', 'score': -3, 'gameMode': 'streak', 'date': '2024-03-01 10:00:00'},
    {'name': 'Alice', 'score': 3, 'gameMode': 'marathon', 'date': '2024-03-01 10:00:00'},
    {'name': 'Alice', 'score': 3, 'gameMode': 'streak', 'date': 'yesterday'},
    {'name': '', 'score': 3, 'gameMode': 'streak', 'date': '2024-03-01 10:00:00'},
    'not an object',
])
def test_canonicalize_rejects_malformed(bad):
    with pytest.raises(MigrationError):
        canonicalize_legacy_entries([LEGACY_ENTRIES[0], bad])


def test_migration_imports_once(engine, tmp_path):
    source = _write(tmp_path / 'leaderboard.json', LEGACY_ENTRIES)
    assert engine.migrate_legacy_leaderboard(source) == 2
    assert engine.migrate_legacy_leaderboard(source) == 0
    assert LeaderboardEntry.query.count() == 2
    assert DatabaseMetadata.get_value(SCHEMA_VERSION_KEY) == '2'
    assert DatabaseMetadata.get_value(MIGRATION_MARKER_KEY)


def test_migration_keeps_source_and_backup(engine, tmp_path):
    source = _write(tmp_path / 'leaderboard.json', LEGACY_ENTRIES)
    engine.migrate_legacy_leaderboard(source)
    assert os.path.exists(source)
    backups = [p for p in tmp_path.iterdir() if p.is_dir() and p.name.startswith('backup_')]
    assert len(backups) == 1
    assert (backups[0] / 'leaderboard.json').read_text(encoding='utf-8') == (tmp_path / 'leaderboard.json').read_text(encoding='utf-8')


def test_changed_file_only_adds_new_rows(engine, tmp_path):
    source = _write(tmp_path / 'leaderboard.json', LEGACY_ENTRIES)
    engine.migrate_legacy_leaderboard(source)
    extra = {'name': 'Dan', 'score': 30, 'gameMode': 'challenge', 'date': '2024-04-01 09:00:00'}
    _write(tmp_path / 'leaderboard.json', LEGACY_ENTRIES + [extra])
    assert engine.migrate_legacy_leaderboard(source) == 1
    assert LeaderboardEntry.query.count() == 3


def test_migrated_rows_rank_with_new_ones(engine, tmp_path):
    source = _write(tmp_path / 'leaderboard.json', LEGACY_ENTRIES)
    engine.migrate_legacy_leaderboard(source)
    _, rank = engine.submit_leaderboard_entry('Eve', 12, 'streak', 'hard')
    assert rank == 2
    rows = engine.query_leaderboard('streak', 'hard')
    assert [r['name'] for r in rows] == ['Alice', 'Eve']
    assert rows[0]['date'] == '2024-03-01 10:00:00'


def test_malformed_file_changes_nothing(engine, tmp_path):
    bad = LEGACY_ENTRIES + [{'name': 'Zed', 'score': 'lots', 'gameMode': 'streak', 'date': '2024-03-01 10:00:00'}]
    source = _write(tmp_path / 'leaderboard.json', bad)
    with pytest.raises(MigrationError):
        engine.migrate_legacy_leaderboard(source)
    assert LeaderboardEntry.query.count() == 0
    assert DatabaseMetadata.get_value(MIGRATION_MARKER_KEY) is None
    assert not any(p.name.startswith('backup_') for p in tmp_path.iterdir())


def test_invalid_json_is_rejected(engine, tmp_path):
    source = tmp_path / 'leaderboard.json'
    source.write_text('{"entries": [', encoding='utf-8')
    with pytest.raises(MigrationError):
        engine.migrate_legacy_leaderboard(str(source))


def test_missing_file_is_rejected(engine, tmp_path):
    with pytest.raises(MigrationError):
        engine.migrate_legacy_leaderboard(str(tmp_path / 'nope.json'))


def test_plain_list_format(engine, tmp_path):
    source = tmp_path / 'leaderboard.json'
    source.write_text(json.dumps(LEGACY_ENTRIES[:2]), encoding='utf-8')
    assert engine.migrate_legacy_leaderboard(str(source)) == 2


def test_cli_command(flask_app, tmp_path):
    source = _write(tmp_path / 'leaderboard.json', LEGACY_ENTRIES)
    runner = flask_app.test_cli_runner()
    result = runner.invoke(args=['migrate-leaderboard', source])
    assert result.exit_code == 0
    assert 'Migrated 2 leaderboard entries' in result.output
