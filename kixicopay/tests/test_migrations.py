from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory

REPO_ROOT = Path(__file__).resolve().parents[2]


def test_alembic_ini_points_at_migrations():
    cfg = Config(str(REPO_ROOT / 'alembic.ini'))
    script = ScriptDirectory.from_config(cfg)
    assert Path(script.dir).resolve() == REPO_ROOT / 'kixicopay' / 'alembic'
    assert script.get_current_head() == '0001'
