"""
Run one ingestion pass and one export pass for the demo project.
"""

from __future__ import annotations

from pathlib import Path

from galedi.core.initialization import initialize
from galedi.sync import run_export, run_ingestion


def main() -> None:
    config, store = initialize(Path(__file__).parent, env=None)
    partners = config.enabled_partners()
    try:
        ingest = run_ingestion(partners, store=store, work_dir=config.work_dir)
        export = run_export(partners, store=store, work_dir=config.work_dir)
    finally:
        store.close()

    for summary in (ingest, export):
        for partner_id, result in summary["partners"].items():
            print(f"{summary['purpose']:<7} {partner_id:<6} {result['status']}")


if __name__ == "__main__":
    main()
