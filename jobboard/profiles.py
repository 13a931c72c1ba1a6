"""
Account and profile operations for employees and employers.

A profile lives at ``users/{role}s/{uid}``. Blob-backed fields (résumé,
profile picture, company logo) hold a signed URL, and the storage key sits
next to it in ``{field}_path`` so replacements and deletions never depend on
the URL layout.
"""

from __future__ import annotations

import logging
import posixpath
import time
from datetime import timedelta
from typing import Mapping, Optional

from jobboard.errors import (
    JobBoardError,
    NotFound,
    StorageFailed,
    Unauthorized,
    ValidationFailed,
)
from jobboard.identity import IdentityProvider
from jobboard.roles import check_role_tag, require_role, resolve_role
from jobboard.schemas import SignUpForm
from jobboard.storage import BlobNotFound, BlobStore, key_from_signed_url
from jobboard.tree_store import TreeStore
from jobboard.types import (
    BLOB_FIELDS,
    BLOB_PREFIXES,
    PROFILE_FIELDS,
    BlobField,
    Role,
    Upload,
    job_owner_path,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

PUBLIC_FIELDS = {
    Role.EMPLOYEE: ("name", "email", "location", "skills"),
    Role.EMPLOYER: ("name", "email", "location", "industry", "company_logo"),
}

EMPLOYEE_VIEW_FIELDS = (
    "name",
    "email",
    "location",
    "birthday",
    "phone_number",
    "skills",
    "resume",
    "profile_picture",
)

# Bookkeeping children that are not part of the profile itself.
INTERNAL_CHILDREN = ("applied_jobs",)


def _label(role: Role) -> str:
    return role.value.capitalize()


class ProfileService:
    def __init__(
        self,
        tree: TreeStore,
        blobs: BlobStore,
        identity: IdentityProvider,
        *,
        asset_url_ttl: timedelta = timedelta(days=3650),
        download_url_ttl: timedelta = timedelta(minutes=15),
    ):
        self.tree = tree
        self.blobs = blobs
        self.identity = identity
        self.asset_url_ttl = asset_url_ttl
        self.download_url_ttl = download_url_ttl

    # Accounts

    def sign_up(self, form: SignUpForm, uploads: Mapping[str, Upload]) -> dict:
        """
        Create the identity account, upload any files, then write the profile.

        If anything after account creation fails, the account and the files
        uploaded so far are removed again so the uid never exists without a
        profile.
        """
        missing = form.missing_role_fields()
        if missing:
            raise ValidationFailed(
                {name: [f"The {name.replace('_', ' ')} field is required."] for name in missing}
            )

        role = form.user_type
        uid = self.identity.create_account(form.email, form.password)
        uploaded: list[str] = []
        try:
            now = utc_now_iso()
            record = {
                role.uid_field: uid,
                "user_type": role.value,
                **form.profile_fields(),
                "created_at": now,
                "updated_at": now,
            }
            for blob_field in BLOB_FIELDS[role]:
                upload = uploads.get(blob_field.name)
                if upload is None:
                    continue
                key, url = self._store_blob(uid, blob_field, upload)
                uploaded.append(key)
                record[blob_field.name] = url
                record[blob_field.path_field] = key
            self.tree.set(role.user_path(uid), record)
        except Exception:
            self._roll_back_sign_up(uid, uploaded)
            raise

        logger.info("Signed up %s %s", role.value, uid)
        return {"uid": uid, "email": form.email, "user_type": role.value}

    def _roll_back_sign_up(self, uid: str, uploaded: list[str]) -> None:
        for key in uploaded:
            try:
                self.blobs.delete(key)
            except (BlobNotFound, StorageFailed) as e:
                logger.warning("Sign-up rollback could not delete %s: %s", key, e)
        try:
            self.identity.delete_account(uid)
        except JobBoardError as e:
            logger.warning("Sign-up rollback could not delete account %s: %s", uid, e)

    def sign_in(self, email: str, password: str) -> dict:
        result = self.identity.sign_in(email, password)
        role = resolve_role(self.tree, result.uid)
        if role is None:
            raise NotFound("User not found.")
        return {"uid": result.uid, "id_token": result.id_token, "user_type": role.value}

    def logout(self, uid: str) -> None:
        self.identity.revoke_sessions(uid)

    def forgot_password(self, email: str) -> None:
        self.identity.send_password_reset(email)

    def change_password(self, uid: str, role: Role, current: str, new: str) -> None:
        require_role(self.tree, uid, role, f"User is not an {role.value} or does not exist")
        account = self.identity.get_account(uid)
        try:
            self.identity.sign_in(account.email or "", current)
        except Unauthorized as e:
            raise Unauthorized("Current password is incorrect") from e
        self.identity.set_password(uid, new)
        logger.info("Password changed for %s", uid)

    # Profiles

    def get(self, uid: str, role: Role) -> dict:
        record = self.tree.get(role.user_path(uid))
        if not record:
            raise NotFound(f"{_label(role)} not found")
        check_role_tag(uid, role, record)
        for child in INTERNAL_CHILDREN:
            record.pop(child, None)
        return record

    def update(
        self,
        uid: str,
        role: Role,
        fields: Mapping[str, Optional[str]],
        uploads: Mapping[str, Upload],
    ) -> dict:
        """
        Partial update: omitted fields keep their value.

        An email change is pushed to the identity provider first; if that is
        rejected nothing is written. Each uploaded file replaces the previous
        blob. If an upload fails after the old blob was deleted, the field is
        persisted as unset before the error propagates.
        """
        path = role.user_path(uid)
        current = self.get(uid, role)
        changes = {
            name: value
            for name, value in fields.items()
            if value is not None and name in PROFILE_FIELDS[role]
        }

        synced: dict = {}
        new_email = changes.get("email")
        if new_email and new_email != current.get("email"):
            self.identity.update_email(uid, new_email)
            synced["email"] = new_email
            logger.info("Email for %s synced to identity provider", uid)

        blob_changes: dict = {}
        try:
            for blob_field in BLOB_FIELDS[role]:
                upload = uploads.get(blob_field.name)
                if upload is None:
                    continue
                self._delete_blob(uid, blob_field, current)
                blob_changes[blob_field.name] = None
                blob_changes[blob_field.path_field] = None
                key, url = self._store_blob(uid, blob_field, upload)
                blob_changes[blob_field.name] = url
                blob_changes[blob_field.path_field] = key
        except Exception as e:
            if blob_changes or synced:
                self.tree.update(path, {**synced, **blob_changes, "updated_at": utc_now_iso()})
            if isinstance(e, JobBoardError):
                raise
            raise StorageFailed("Could not store uploaded file", detail=str(e)) from e

        self.tree.update(
            path,
            {**changes, **blob_changes, "user_type": role.value, "updated_at": utc_now_iso()},
        )
        return self.get(uid, role)

    def delete(self, uid: str, role: Role) -> None:
        """Delete blobs, then the profile node, then the identity account."""
        record = self.tree.get(role.user_path(uid))
        if not record:
            raise NotFound(f"{_label(role)} profile not found")
        check_role_tag(uid, role, record)

        for blob_field in BLOB_FIELDS[role]:
            self._delete_blob(uid, blob_field, record)

        removals: dict = {role.user_path(uid): None}
        for job_id in record.get("jobs") or {}:
            removals[job_owner_path(job_id)] = None
        self.tree.update("", removals)

        self.identity.delete_account(uid)
        logger.info("Deleted %s %s", role.value, uid)

    def list_public(self, role: Role) -> list[dict]:
        records = self.tree.get(role.subtree) or {}
        return [
            {role.uid_field: uid, **{name: record.get(name) for name in PUBLIC_FIELDS[role]}}
            for uid, record in sorted(records.items())
            if isinstance(record, dict)
        ]

    def view_employee(self, caller_uid: str, employee_uid: str) -> dict:
        require_role(
            self.tree, caller_uid, Role.EMPLOYER, "Only employers can view employee profiles"
        )
        record = self.tree.get(Role.EMPLOYEE.user_path(employee_uid))
        if not record:
            raise NotFound("Employee not found")
        return {
            "employee_uid": employee_uid,
            **{name: record.get(name) for name in EMPLOYEE_VIEW_FIELDS},
        }

    # Files

    def download_link(self, path: str) -> tuple[str, int]:
        """Short-lived signed URL for an uploaded profile asset."""
        key = posixpath.normpath(path.strip("/")) if path else ""
        if not key.startswith(tuple(f"{prefix}/" for prefix in BLOB_PREFIXES)):
            raise ValidationFailed.single("path", "The path must point to an uploaded file.")
        if not self.blobs.exists(key):
            raise NotFound("File not found")
        url = self.blobs.signed_url(key, self.download_url_ttl)
        return url, int(self.download_url_ttl.total_seconds())

    def _store_blob(self, uid: str, blob_field: BlobField, upload: Upload) -> tuple[str, str]:
        filename = posixpath.basename(upload.filename.replace("\\", "/"))
        key = blob_field.storage_key(uid, int(time.time()), filename)
        self.blobs.upload_bytes(key, upload.content, upload.content_type)
        return key, self.blobs.signed_url(key, self.asset_url_ttl)

    def _delete_blob(self, uid: str, blob_field: BlobField, record: Mapping) -> None:
        key = record.get(blob_field.path_field)
        if not key and record.get(blob_field.name):
            key = key_from_signed_url(record[blob_field.name], blob_field.prefix, uid)
        if not key:
            return
        try:
            self.blobs.delete(key)
        except BlobNotFound:
            logger.warning("Blob %s was already absent", key)
