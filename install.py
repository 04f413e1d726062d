#!/usr/bin/env python3
"""Set up a virtualenv for dashcam-remote and seed its config files.

Usage:
    python install.py          # runtime dependencies only
    python install.py --dev    # editable install plus pytest tooling
"""

import shutil
import subprocess
import sys
from pathlib import Path

MIN_PYTHON = (3, 11)
ROOT = Path(__file__).resolve().parent
VENV = ROOT / ".venv"
SEED_FILES = {"config.example.yaml": "config.yaml", ".env.example": ".env"}


def _venv_bin(name: str) -> Path:
    if sys.platform == "win32":
        return VENV / "Scripts" / f"{name}.exe"
    return VENV / "bin" / name


def _require_python() -> None:
    if sys.version_info < MIN_PYTHON:
        wanted = ".".join(map(str, MIN_PYTHON))
        sys.exit(f"dashcam-remote needs Python {wanted}+, found {sys.version.split()[0]}")


def _ensure_venv() -> Path:
    if VENV.is_dir():
        print(f"Reusing {VENV.name}/")
    else:
        print(f"Creating {VENV.name}/ ...")
        subprocess.check_call([sys.executable, "-m", "venv", str(VENV)])
    return _venv_bin("python")


def _install_package(python: Path, dev: bool) -> None:
    subprocess.check_call([str(python), "-m", "pip", "install", "--upgrade", "pip"])
    args = ["-e", ".[dev]"] if dev else ["."]
    print(f"pip install {' '.join(args)}")
    subprocess.check_call([str(python), "-m", "pip", "install", *args], cwd=ROOT)


def _seed_files() -> None:
    # SQLite offsets go under data/ by default
    (ROOT / "data").mkdir(exist_ok=True)
    for example, target in SEED_FILES.items():
        src, dst = ROOT / example, ROOT / target
        if dst.exists():
            print(f"Keeping existing {target}")
        elif src.exists():
            shutil.copyfile(src, dst)
            print(f"Wrote {target} from {example}")


def main() -> None:
    _require_python()
    python = _ensure_venv()
    _install_package(python, dev="--dev" in sys.argv[1:])
    _seed_files()

    print("\nDone. Next:")
    print("  - put TELEGRAM_BOT_TOKEN / DINGTALK_CLIENT_ID / DINGTALK_CLIENT_SECRET in .env")
    print("  - list allowed chat ids and the record/photo hooks in config.yaml")
    print(f"  - {python} -m dashcam_remote config-check")
    print(f"  - {python} -m dashcam_remote")


if __name__ == "__main__":
    main()
