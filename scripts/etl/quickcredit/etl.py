"""
QuickCredit ETL CLI

Imports the QuickCredit spreadsheet exports (CSV) into the lending app and
runs the one-shot reconciliation/repair actions used to keep the database in
line with them.

Usage examples (run from project root; activate venv first):
  python scripts/etl/quickcredit/etl.py import-all --config scripts/etl/quickcredit/config.yaml
  python scripts/etl/quickcredit/etl.py import-borrowers --csv-dir ./csv-data
  python scripts/etl/quickcredit/etl.py compare-savings
  python scripts/etl/quickcredit/etl.py bulk-update-status --from PENDING --to APPROVED
  python manage.py quickcredit_etl --action status

Notes
- Files are looked up as <csv_dir>/<file_prefix><Entity>.csv unless the
  config overrides a file name under `files`.
- Rows are upserted by business id; each row commits on its own, so an
  interrupted run leaves earlier rows in place.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# ---------------------------
# Paths & Logging
# ---------------------------
HERE = Path(__file__).resolve()
QUICKCREDIT_DIR = HERE.parent
ETL_DIR = QUICKCREDIT_DIR.parent
SCRIPTS_DIR = ETL_DIR.parent
BACKEND_DIR = SCRIPTS_DIR.parent
LOGS_DIR = QUICKCREDIT_DIR / "logs"
DEFAULT_CSV_DIR = BACKEND_DIR / "csv-data"
DEFAULT_FILE_PREFIX = "Final Quick Credit Loan Management System - "

logger = logging.getLogger("quickcredit_etl")


def configure_logging(level: int = logging.INFO) -> None:
    """Attach the file + stdout handlers once per process."""
    logger.setLevel(level)
    if logger.handlers:
        return
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(LOGS_DIR / f"etl_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.log", encoding="utf-8")
    sh = logging.StreamHandler(sys.stdout)
    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    fh.setFormatter(fmt)
    sh.setFormatter(fmt)
    logger.addHandler(fh)
    logger.addHandler(sh)


@dataclass
class Config:
    """Where the CSV exports live and how they are named."""
    csv_dir: Path = DEFAULT_CSV_DIR
    file_prefix: str = DEFAULT_FILE_PREFIX
    files: Dict[str, str] = field(default_factory=dict)
    system_username: str = "system"

    def path_for(self, entity: str) -> Path:
        name = self.files.get(entity) or f"{self.file_prefix}{entity}.csv"
        return self.csv_dir / name

    @staticmethod
    def from_env() -> "Config":
        csv_dir = (os.getenv("QUICKCREDIT_CSV_DIR") or "").strip()
        return Config(csv_dir=Path(csv_dir).resolve() if csv_dir else DEFAULT_CSV_DIR)

    @staticmethod
    def from_yaml(path: Path) -> "Config":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        base = Config.from_env()
        csv_dir_val = data.get("csv_dir")
        csv_dir = Path(csv_dir_val).expanduser().resolve() if csv_dir_val and str(csv_dir_val).strip() else base.csv_dir
        prefix = data.get("file_prefix")
        return Config(
            csv_dir=csv_dir,
            file_prefix=DEFAULT_FILE_PREFIX if prefix is None else str(prefix),
            files={str(k): str(v) for k, v in (data.get("files") or {}).items()},
            system_username=str(data.get("system_username") or "system"),
        )


def build_config(config_path: str = "", csv_dir: str = "") -> Config:
    if config_path:
        p = Path(config_path)
        if not p.is_absolute():
            p = (BACKEND_DIR / p).resolve()
        cfg = Config.from_yaml(p)
    else:
        cfg = Config.from_env()
    if csv_dir:
        cfg.csv_dir = Path(csv_dir).expanduser().resolve()
    return cfg


# ---------------------------
# Django
# ---------------------------

def setup_django() -> None:
    """Initialize Django so we can import and use ORM in a standalone script."""
    if str(BACKEND_DIR) not in sys.path:
        sys.path.append(str(BACKEND_DIR))
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "server.settings")
    import django  # type: ignore
    django.setup()


# ---------------------------
# Actions
# ---------------------------

IMPORT_ACTIONS = {
    "import-borrowers": "import_borrowers",
    "import-loans": "import_loans",
    "import-repayments": "import_repayments",
    "import-savings": "import_savings",
    "import-deposits": "import_deposits",
    "import-withdrawals": "import_withdrawals",
    "import-expenses": "import_expenses",
    "import-applications": "import_applications",
}

ACTIONS = [
    "import-all",
    *IMPORT_ACTIONS,
    "clear",
    "status",
    "compare-savings",
    "import-missing-deposits",
    "recompute-savings-balances",
    "update-opening-dates",
    "update-phone-numbers",
    "regenerate-borrower-ids",
    "fix-loan-dates",
    "reimport-repayments",
    "bulk-update-status",
    "send-reminders",
    "send-overdue-notices",
]

# Actions that only read and are not recorded as ImportRun rows
READ_ONLY = {"status", "compare-savings"}


def run_action(
    action: str,
    cfg: Config,
    from_status: str = "",
    to_status: str = "",
    days: int = 3,
) -> Any:
    """Run one ETL/repair action; Django must already be set up."""
    from django.utils import timezone

    from lending.notifications import NotificationService
    from scripts.etl.quickcredit import importers, repair

    started = timezone.now()
    logger.info("Running %s (csv_dir=%s)", action, cfg.csv_dir)

    if action == "import-all":
        return [r.as_dict() for r in importers.import_all(cfg)]

    if action in IMPORT_ACTIONS:
        result: Any = getattr(importers, IMPORT_ACTIONS[action])(cfg).as_dict()
    elif action == "clear":
        result = importers.clear_all_data()
    elif action == "status":
        result = importers.import_status()
    elif action == "compare-savings":
        result = repair.compare_savings(cfg)
    elif action == "import-missing-deposits":
        result = repair.import_missing_deposits(cfg)
    elif action == "recompute-savings-balances":
        result = repair.recompute_savings_balances()
    elif action == "update-opening-dates":
        result = repair.update_opening_dates(cfg)
    elif action == "update-phone-numbers":
        result = repair.update_phone_numbers(cfg)
    elif action == "regenerate-borrower-ids":
        result = repair.regenerate_borrower_ids()
    elif action == "fix-loan-dates":
        result = repair.fix_loan_dates()
    elif action == "reimport-repayments":
        result = repair.reimport_repayments(cfg)
    elif action == "bulk-update-status":
        if not from_status or not to_status:
            raise ValueError("bulk-update-status requires --from and --to")
        result = repair.bulk_update_application_status(from_status, to_status)
    elif action == "send-reminders":
        result = {"sent": NotificationService().send_payment_reminders(days=days)}
    elif action == "send-overdue-notices":
        result = {"sent": NotificationService().send_overdue_notices()}
    else:
        raise ValueError(f"Unknown action: {action}")

    if action not in READ_ONLY:
        importers.record_run(action, cfg, started, result if isinstance(result, dict) else {"result": result})
    return result


# ---------------------------
# CLI
# ---------------------------

def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="QuickCredit CSV import and repair")
    sub = p.add_subparsers(dest="cmd", required=True)

    for name in ACTIONS:
        sp = sub.add_parser(name)
        sp.add_argument("--config", default="", help="Path to config.yaml")
        sp.add_argument("--csv-dir", default="", help="Directory holding the CSV exports")
        if name == "bulk-update-status":
            sp.add_argument("--from", dest="from_status", required=True)
            sp.add_argument("--to", dest="to_status", required=True)
        if name == "send-reminders":
            sp.add_argument("--days", type=int, default=3)
    return p.parse_args(argv)


def main(argv: Optional[list] = None) -> None:
    ns = parse_args(argv)
    configure_logging()
    setup_django()
    cfg = build_config(ns.config, ns.csv_dir)
    result = run_action(
        ns.cmd,
        cfg,
        from_status=getattr(ns, "from_status", ""),
        to_status=getattr(ns, "to_status", ""),
        days=getattr(ns, "days", 3),
    )
    print(json.dumps(result, indent=2, default=str, ensure_ascii=False))


if __name__ == "__main__":
    main()
