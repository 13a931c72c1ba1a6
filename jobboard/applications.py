"""
Job applications.

An application is one logical record with one id, stored twice:

    users/employers/{employerUid}/jobs/{jobId}/applications/{applicationId}
    users/employees/{employeeUid}/job_applications/{applicationId}

Both copies are written (and later updated) together in a single multi-path
update. ``users/employees/{employeeUid}/applied_jobs/{jobId}`` is claimed with
a conditional write before the copies land, so two concurrent applies for the
same job cannot both succeed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from jobboard.errors import (
    Conflict,
    Forbidden,
    JobBoardError,
    NotFound,
    PartialUpdateFailed,
    StorageFailed,
)
from jobboard.roles import require_role
from jobboard.tree_store import TreeStore, join_path
from jobboard.types import (
    DEFAULT_APPLICATION_STATUS,
    Role,
    applied_guard_path,
    employee_application_path,
    employer_application_path,
    job_path,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

# (snapshot field, source field) pairs copied at apply time.
EMPLOYEE_SNAPSHOT = (
    ("employee_name", "name"),
    ("employee_email", "email"),
    ("employee_phone_number", "phone_number"),
    ("employee_location", "location"),
    ("employee_birthday", "birthday"),
    ("employee_skills", "skills"),
    ("employee_resume", "resume"),
    ("employee_profile_picture", "profile_picture"),
)
EMPLOYER_SNAPSHOT = (
    ("employer_name", "name"),
    ("employer_email", "email"),
    ("employer_phone_number", "phone_number"),
    ("employer_location", "location"),
    ("employer_industry", "industry"),
    ("employer_contact_person_name", "contact_person_name"),
    ("employer_logo", "company_logo"),
)
JOB_SNAPSHOT = (
    ("job_title", "job_title"),
    ("job_description", "job_description"),
    ("location", "location"),
    ("min_salary", "min_salary"),
    ("max_salary", "max_salary"),
    ("salary", "salary"),
    ("employment_type", "employment_type"),
    ("skills_required", "skills_required"),
)


def build_snapshot(
    application_id: str,
    job_id: str,
    employee_uid: str,
    employer_uid: str,
    employee: dict,
    employer: dict,
    job: dict,
) -> dict:
    """Denormalized copy of the three source records, frozen at apply time."""
    now = utc_now_iso()
    snapshot = {"application_id": application_id, "employee_uid": employee_uid}
    snapshot.update({target: employee.get(source) for target, source in EMPLOYEE_SNAPSHOT})
    snapshot["employer_uid"] = employer_uid
    snapshot.update({target: employer.get(source) for target, source in EMPLOYER_SNAPSHOT})
    snapshot["job_id"] = job_id
    snapshot.update({target: job.get(source) for target, source in JOB_SNAPSHOT})
    snapshot.update(
        already_applied=True,
        application_status=DEFAULT_APPLICATION_STATUS,
        created_at=now,
        updated_at=now,
    )
    return snapshot


@dataclass
class Divergence:
    """An employer-side application whose employee-side copy disagrees."""

    employer_uid: str
    job_id: str
    application_id: str
    employee_uid: Optional[str]
    employer_status: Optional[str]
    employee_status: Optional[str]
    missing: bool = False

    def as_dict(self) -> dict:
        return {
            "employer_uid": self.employer_uid,
            "job_id": self.job_id,
            "application_id": self.application_id,
            "employee_uid": self.employee_uid,
            "employer_status": self.employer_status,
            "employee_status": self.employee_status,
            "missing": self.missing,
        }


class ApplicationService:
    def __init__(self, tree: TreeStore):
        self.tree = tree

    def list_mine(self, employee_uid: str) -> list[dict]:
        record = require_role(
            self.tree, employee_uid, Role.EMPLOYEE, "User is not an employee or does not exist"
        )
        applications = record.get("job_applications") or {}
        if not applications:
            raise NotFound("No job applications found")
        return [application for _, application in sorted(applications.items())]

    def apply(self, caller_uid: str, employer_id: str, job_id: str) -> dict:
        employee = require_role(
            self.tree, caller_uid, Role.EMPLOYEE, "Only employees can apply for jobs"
        )
        for existing in (employee.get("job_applications") or {}).values():
            if isinstance(existing, dict) and existing.get("job_id") == job_id:
                raise Conflict("You have already applied to this job posting")

        job = self.tree.get(job_path(employer_id, job_id))
        if not job:
            raise NotFound("Job posting not found")
        employer = self.tree.get(Role.EMPLOYER.user_path(employer_id))
        if not employer:
            raise NotFound("Employer not found")

        application_id = self.tree.generate_key()
        guard = applied_guard_path(caller_uid, job_id)
        if not self.tree.create_if_absent(guard, application_id):
            raise Conflict("You have already applied to this job posting")

        snapshot = build_snapshot(
            application_id, job_id, caller_uid, employer_id, employee, employer, job
        )
        try:
            self._write_copies(
                [
                    (employer_application_path(employer_id, job_id), {application_id: snapshot}),
                    (employee_application_path(caller_uid), {application_id: snapshot}),
                ]
            )
        except Exception as e:
            if not isinstance(e, PartialUpdateFailed) or self._discard_copies(
                e.written, application_id
            ):
                self._release_guard(guard)
            if isinstance(e, JobBoardError):
                raise
            raise StorageFailed("Could not create job application", detail=str(e)) from e

        logger.info(
            "Employee %s applied to job %s of employer %s (%s)",
            caller_uid,
            job_id,
            employer_id,
            application_id,
        )
        return snapshot

    def list_for_job(self, caller_uid: str, employer_id: str, job_id: str) -> dict:
        self._require_owner(caller_uid, employer_id, "view")
        job = self.tree.get(job_path(employer_id, job_id))
        if not job:
            raise NotFound("Job posting not found")
        applications = job.get("applications") or {}
        if not applications:
            raise NotFound("No job applications found")
        return applications

    def update_status(
        self,
        caller_uid: str,
        employer_id: str,
        job_id: str,
        application_id: str,
        status: str,
    ) -> dict:
        self._require_owner(caller_uid, employer_id, "update")
        employer_side = employer_application_path(employer_id, job_id, application_id)
        current = self.tree.get(employer_side)
        if not current:
            raise NotFound("Job application not found")

        changes = {"application_status": status, "updated_at": utc_now_iso()}
        writes = [(employer_side, changes)]
        employee_uid = current.get("employee_uid")
        employee_side = (
            employee_application_path(employee_uid, application_id) if employee_uid else None
        )
        if employee_side and self.tree.get(employee_side) is not None:
            writes.append((employee_side, changes))
        else:
            logger.warning(
                "Employee-side copy of application %s is missing; updating employer side only",
                application_id,
            )

        self._write_copies(writes)
        logger.info("Application %s set to %r by %s", application_id, status, caller_uid)
        return {**current, **changes}

    # Consistency audit

    def find_divergent_copies(self) -> list[Divergence]:
        """Compare every employer-side application with its employee-side copy."""
        employers = self.tree.get(Role.EMPLOYER.subtree) or {}
        employees = self.tree.get(Role.EMPLOYEE.subtree) or {}
        findings: list[Divergence] = []
        for employer_uid, employer in sorted(employers.items()):
            for job_id, job in sorted(((employer or {}).get("jobs") or {}).items()):
                for application_id, application in sorted(
                    ((job or {}).get("applications") or {}).items()
                ):
                    employee_uid = application.get("employee_uid")
                    copies = (employees.get(employee_uid) or {}).get("job_applications") or {}
                    copy = copies.get(application_id)
                    employer_status = application.get("application_status")
                    if copy is None:
                        findings.append(
                            Divergence(
                                employer_uid,
                                job_id,
                                application_id,
                                employee_uid,
                                employer_status,
                                None,
                                missing=True,
                            )
                        )
                    elif copy.get("application_status") != employer_status:
                        findings.append(
                            Divergence(
                                employer_uid,
                                job_id,
                                application_id,
                                employee_uid,
                                employer_status,
                                copy.get("application_status"),
                            )
                        )
        return findings

    def repair_divergent_copies(self, findings: Optional[list[Divergence]] = None) -> int:
        """
        Copy the employer-side status onto diverged employee-side copies.

        Missing copies are only reported; the employee may have deleted their
        account.
        """
        if findings is None:
            findings = self.find_divergent_copies()
        repaired = 0
        for finding in findings:
            if finding.missing or not finding.employee_uid:
                continue
            self.tree.update(
                employee_application_path(finding.employee_uid, finding.application_id),
                {"application_status": finding.employer_status, "updated_at": utc_now_iso()},
            )
            repaired += 1
        return repaired

    def _require_owner(self, caller_uid: str, employer_id: str, action: str) -> None:
        require_role(
            self.tree, caller_uid, Role.EMPLOYER, "User is not an employer or does not exist"
        )
        if caller_uid != employer_id:
            raise Forbidden(
                "You do not own this job posting. You are not authorized to "
                f"{action} applications for this job posting"
            )

    def _write_copies(self, writes: list[tuple[str, dict]]) -> None:
        """
        Apply ``(path, children)`` merges for both copies, employer side first.

        One atomic multi-path update when the store supports it; otherwise
        sequential writes, where a failure after the first landed is reported
        as a partial update.
        """
        if self.tree.atomic_multi_path:
            self.tree.update(
                "",
                {
                    join_path(path, key): value
                    for path, children in writes
                    for key, value in children.items()
                },
            )
            return

        written: list[str] = []
        for path, children in writes:
            try:
                self.tree.update(path, children)
            except Exception as e:
                if not written:
                    raise
                logger.error("Partial application write: %s written, %s failed", written, path)
                raise PartialUpdateFailed(
                    "Job application was only partially updated",
                    written=written,
                    failed=[path],
                    detail=str(e),
                ) from e
            written.append(path)

    def _discard_copies(self, paths: list[str], application_id: str) -> bool:
        """Remove copies written before a failed apply. False if any remain."""
        for path in paths:
            copy = join_path(path, application_id)
            try:
                self.tree.remove(copy)
            except JobBoardError as e:
                logger.error("Could not discard application copy %s, keeping guard: %s", copy, e)
                return False
        return True

    def _release_guard(self, guard: str) -> None:
        try:
            self.tree.remove(guard)
        except JobBoardError as e:
            logger.warning("Could not release application guard %s: %s", guard, e)
