"""
Audit the two stored copies of every job application.

Each application lives under the employer's job and under the applicant's
profile. This walks every employer-side application, reports copies whose
status disagrees (or whose employee-side copy is gone) and, with --repair,
copies the employer-side status onto the diverged employee-side copies.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jobboard.applications import ApplicationService
from jobboard.dependencies import get_tree_store
from jobboard.tree_store import InMemoryTreeStore


logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Check job application copies")
    parser.add_argument(
        "--repair",
        action="store_true",
        help="Copy the employer-side status onto diverged employee-side copies",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print findings as JSON lines",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    tree = get_tree_store()
    if isinstance(tree, InMemoryTreeStore):
        logger.warning("Firebase is not configured; checking an empty in-memory store")

    service = ApplicationService(tree)
    findings = service.find_divergent_copies()
    for finding in findings:
        if args.json:
            print(json.dumps(finding.as_dict()))
        elif finding.missing:
            logger.warning(
                "Application %s (job %s, employer %s): employee-side copy for %s is missing",
                finding.application_id,
                finding.job_id,
                finding.employer_uid,
                finding.employee_uid,
            )
        else:
            logger.warning(
                "Application %s (job %s, employer %s): employer status %r, employee status %r",
                finding.application_id,
                finding.job_id,
                finding.employer_uid,
                finding.employer_status,
                finding.employee_status,
            )

    logger.info("Found %d divergent application copies", len(findings))
    if args.repair and findings:
        repaired = service.repair_divergent_copies(findings)
        logger.info("Repaired %d employee-side copies", repaired)
    return 1 if findings and not args.repair else 0


if __name__ == "__main__":
    sys.exit(main())
