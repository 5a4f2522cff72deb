import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="pi-planner-tests-")

os.environ.setdefault("PLANNER_STORAGE__DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TMP, 'test_planner.db')}")
os.environ.setdefault("PLANNER_STORAGE__ARTIFACT_DIR", os.path.join(_TMP, "artifacts"))
