#!/usr/bin/env python3
"""
Install cron job for the daily résumé cleanup at CLEANUP_CRON_HOUR (from .env).
Run once: python setup_cron.py
"""
from __future__ import annotations

import os
import subprocess
from pathlib import Path

from dotenv import load_dotenv

# Project root
ROOT = Path(__file__).resolve().parent
CRONTAB_FILE = "crontab.txt"


def venv_python(root: Path = ROOT) -> Path:
    return root / ".venv" / "bin" / "python"


def build_entry(hour: int, root: Path = ROOT) -> str:
    script = root / "run_cleanup.py"
    cron_log = root / "logs" / "cron.log"
    return f"0 {hour} * * * cd {root} && {venv_python(root)} {script} >> {cron_log} 2>&1"


def merge_crontab(existing: str, entry: str) -> str | None:
    """New crontab text, or None when the entry is already installed."""
    existing = existing.strip()
    if entry in existing:
        return None
    return (existing + "\n" + entry).strip() if existing else entry


def current_crontab() -> str:
    """The user's crontab, empty when there is none yet."""
    out = subprocess.run(["crontab", "-l"], capture_output=True, text=True, timeout=5)
    return (out.stdout or "") if out.returncode == 0 else ""


def install(text: str) -> bool:
    proc = subprocess.run(["crontab", "-"], input=text + "\n", capture_output=True, text=True, timeout=5)
    return proc.returncode == 0


def write_fallback(text: str, root: Path = ROOT) -> Path:
    path = root / CRONTAB_FILE
    path.write_text(text + "\n", encoding="utf-8")
    return path


def main(root: Path = ROOT) -> int:
    load_dotenv(root / ".env")
    if not venv_python(root).exists():
        print("Error: .venv not found. Run: python -m venv .venv && pip install -e .")
        return 1

    hour = int(os.environ.get("CLEANUP_CRON_HOUR", "3"))
    entry = build_entry(hour, root)
    try:
        merged = merge_crontab(current_crontab(), entry)
        if merged is None:
            print("Cron entry already present. No change.")
            return 0
        if install(merged):
            print(f"Cron installed: daily at {hour}:00")
            print(f"  Entry: {entry}")
            return 0
        fallback = write_fallback(merged, root)
    except (subprocess.TimeoutExpired, FileNotFoundError) as exc:
        print(f"crontab unavailable ({exc.__class__.__name__}).")
        fallback = write_fallback(entry, root)

    print(f"Wrote {fallback}. Install it manually with:")
    print(f"  crontab {fallback}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
