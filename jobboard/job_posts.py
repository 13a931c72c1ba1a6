"""
Job posts, stored under the owning employer at
``users/employers/{employerUid}/jobs/{jobId}``.

``job_owners/{jobId}`` maps a job id back to its employer so a post can be
addressed by id alone; it is written and removed in the same multi-path
update as the post itself.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from jobboard.errors import BadRequest, Forbidden, NotFound, ValidationFailed
from jobboard.roles import require_role, resolve_role
from jobboard.schemas import JobPostCreate, JobPostUpdate
from jobboard.tree_store import TreeStore
from jobboard.types import Role, job_owner_path, job_path, utc_now_iso

logger = logging.getLogger(__name__)


def _public_post(employer_uid: str, job_id: str, job: dict) -> dict:
    post = {key: value for key, value in job.items() if key != "applications"}
    post["job_id"] = job_id
    post["employer_uid"] = employer_uid
    return post


def _flatten(employer_uid: str, jobs: Optional[dict]) -> list[dict]:
    if not isinstance(jobs, dict):
        return []
    return [
        _public_post(employer_uid, job_id, job)
        for job_id, job in sorted(jobs.items())
        if isinstance(job, dict)
    ]


def check_salary(fields: dict[str, Any]) -> None:
    """A post needs a min/max salary range or a flat salary."""
    low, high = fields.get("min_salary"), fields.get("max_salary")
    if low is not None or high is not None:
        if low is None:
            raise ValidationFailed.single(
                "min_salary", "The min salary field is required when max salary is present."
            )
        if high is None:
            raise ValidationFailed.single(
                "max_salary", "The max salary field is required when min salary is present."
            )
        if low > high:
            raise ValidationFailed.single(
                "max_salary", "The max salary must be greater than or equal to the min salary."
            )
    elif fields.get("salary") is None:
        raise ValidationFailed.single(
            "salary", "A salary or a min salary and max salary are required."
        )


class JobPostService:
    def __init__(self, tree: TreeStore):
        self.tree = tree

    def list(self) -> list[dict]:
        employers = self.tree.get(Role.EMPLOYER.subtree) or {}
        posts: list[dict] = []
        for employer_uid, employer in sorted(employers.items()):
            if isinstance(employer, dict):
                posts.extend(_flatten(employer_uid, employer.get("jobs")))
        return posts

    def list_owned(self, caller_uid: str) -> list[dict]:
        record = require_role(
            self.tree, caller_uid, Role.EMPLOYER, "Only employers have job posts"
        )
        return _flatten(caller_uid, record.get("jobs"))

    def create(self, caller_uid: str, post: JobPostCreate) -> str:
        role = resolve_role(self.tree, caller_uid)
        if role is None:
            raise NotFound("User not found")
        if role != Role.EMPLOYER:
            raise Forbidden("Only employers can create job posts")

        fields = post.model_dump(exclude_none=True)
        check_salary(fields)

        job_id = self.tree.generate_key()
        now = utc_now_iso()
        record = {**fields, "employer_uid": caller_uid, "created_at": now, "updated_at": now}
        self.tree.update(
            "",
            {
                job_path(caller_uid, job_id): record,
                job_owner_path(job_id): caller_uid,
            },
        )
        logger.info("Employer %s created job post %s", caller_uid, job_id)
        return job_id

    def update(self, caller_uid: str, job_id: str, changes: JobPostUpdate) -> dict:
        job = self._owned_job(caller_uid, job_id, "update")
        fields = changes.model_dump(exclude_none=True)
        if not fields:
            raise BadRequest("No valid data to update")
        check_salary({**job, **fields})

        fields["updated_at"] = utc_now_iso()
        self.tree.update(job_path(caller_uid, job_id), fields)
        return _public_post(caller_uid, job_id, {**job, **fields})

    def delete(self, caller_uid: str, job_id: str) -> None:
        """
        Remove the post and its owner entry. Employer-side applications go
        with the post; employee-side copies are left in place.
        """
        self._owned_job(caller_uid, job_id, "delete")
        self.tree.update(
            "",
            {
                job_path(caller_uid, job_id): None,
                job_owner_path(job_id): None,
            },
        )
        logger.info("Employer %s deleted job post %s", caller_uid, job_id)

    def _owned_job(self, caller_uid: str, job_id: str, action: str) -> dict:
        require_role(
            self.tree, caller_uid, Role.EMPLOYER, f"Only employers can {action} job posts"
        )
        owner = self.tree.get(job_owner_path(job_id))
        if not owner:
            raise NotFound("Job post not found")
        if owner != caller_uid:
            raise Forbidden(f"You can only {action} your own job posts")

        job = self.tree.get(job_path(owner, job_id))
        if not job:
            raise NotFound("Job post not found")
        if job.get("employer_uid") != caller_uid:
            raise Forbidden(f"You can only {action} your own job posts")
        return job
