from __future__ import annotations

import json

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from scripts.etl.quickcredit.etl import ACTIONS, build_config, configure_logging, run_action


class Command(BaseCommand):
    help = "Run QuickCredit CSV import / repair actions"

    def add_arguments(self, parser):
        parser.add_argument("--action", default="import-all", choices=ACTIONS)
        parser.add_argument("--config", default="")
        parser.add_argument("--csv-dir", default="")
        parser.add_argument("--from", dest="from_status", default="")
        parser.add_argument("--to", dest="to_status", default="")
        parser.add_argument("--days", type=int, default=3)

    def handle(self, *args, **options):
        action = (options.get("action") or "import-all").strip()
        configure_logging()
        config_path = (options.get("config") or "").strip()
        csv_dir = (options.get("csv_dir") or "").strip()
        if not config_path and not csv_dir:
            csv_dir = settings.QUICKCREDIT_CSV_DIR
        cfg = build_config(config_path, csv_dir)

        try:
            result = run_action(
                action,
                cfg,
                from_status=options.get("from_status") or "",
                to_status=options.get("to_status") or "",
                days=options["days"],
            )
        except (ValueError, FileNotFoundError) as e:
            raise CommandError(str(e)) from e

        self.stdout.write(json.dumps(result, indent=2, default=str, ensure_ascii=False))
