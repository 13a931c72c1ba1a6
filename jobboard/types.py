"""
Roles, record fields and the path layout of the tree store.

    users/employees/{uid}
        job_applications/{applicationId}     employee-side application copy
        applied_jobs/{jobId}                 duplicate-application guard
    users/employers/{uid}
        jobs/{jobId}
            applications/{applicationId}     employer-side application copy
    job_owners/{jobId}                       jobId -> employer uid
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from jobboard.tree_store import join_path

JOB_OWNERS = "job_owners"
DEFAULT_APPLICATION_STATUS = "pending"


class Role(str, Enum):
    EMPLOYEE = "employee"
    EMPLOYER = "employer"

    @property
    def subtree(self) -> str:
        return f"users/{self.value}s"

    @property
    def uid_field(self) -> str:
        return f"{self.value}_uid"

    def user_path(self, uid: str) -> str:
        return join_path(self.subtree, uid)


@dataclass(frozen=True)
class BlobField:
    """A profile field holding a signed URL, with its storage key beside it."""

    name: str
    prefix: str

    @property
    def path_field(self) -> str:
        return f"{self.name}_path"

    def storage_key(self, uid: str, timestamp: int, filename: str) -> str:
        return f"{self.prefix}/{uid}/{timestamp}_{filename}"


BLOB_FIELDS: dict[Role, tuple[BlobField, ...]] = {
    Role.EMPLOYEE: (
        BlobField("resume", "resumes"),
        BlobField("profile_picture", "profile_pictures"),
    ),
    Role.EMPLOYER: (BlobField("company_logo", "company_logos"),),
}

PROFILE_FIELDS: dict[Role, tuple[str, ...]] = {
    Role.EMPLOYEE: ("name", "email", "birthday", "phone_number", "location", "skills"),
    Role.EMPLOYER: (
        "name",
        "email",
        "phone_number",
        "location",
        "industry",
        "contact_person_name",
    ),
}

BLOB_PREFIXES = tuple(
    blob_field.prefix for fields in BLOB_FIELDS.values() for blob_field in fields
)


@dataclass
class Upload:
    """A file received from a client, already read into memory."""

    filename: str
    content: bytes
    content_type: Optional[str] = None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def job_path(employer_uid: str, job_id: Optional[str] = None) -> str:
    return join_path(Role.EMPLOYER.user_path(employer_uid), "jobs", job_id or "")


def job_owner_path(job_id: str) -> str:
    return join_path(JOB_OWNERS, job_id)


def employer_application_path(
    employer_uid: str, job_id: str, application_id: Optional[str] = None
) -> str:
    return join_path(job_path(employer_uid, job_id), "applications", application_id or "")


def employee_application_path(employee_uid: str, application_id: Optional[str] = None) -> str:
    return join_path(
        Role.EMPLOYEE.user_path(employee_uid), "job_applications", application_id or ""
    )


def applied_guard_path(employee_uid: str, job_id: str) -> str:
    return join_path(Role.EMPLOYEE.user_path(employee_uid), "applied_jobs", job_id)
