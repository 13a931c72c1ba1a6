"""
HTTP routes for the job board API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from jobboard.applications import ApplicationService
from jobboard.config import get_settings
from jobboard.dependencies import (
    get_application_service,
    get_current_uid,
    get_identity_provider,
    get_job_post_service,
    get_profile_service,
)
from jobboard.errors import ValidationFailed
from jobboard.identity import IdentityProvider
from jobboard.job_posts import JobPostService
from jobboard.profiles import ProfileService
from jobboard.schemas import (
    PROFILE_UPDATE_SCHEMAS,
    ApplicationCreatedResponse,
    ApplicationStatusUpdate,
    ChangePasswordRequest,
    DownloadLinkResponse,
    ForgotPasswordRequest,
    JobPostCreate,
    JobPostCreatedResponse,
    JobPostUpdate,
    MessageResponse,
    SignInRequest,
    SignInResponse,
    SignUpForm,
    SignUpResponse,
    VerifyTokenRequest,
    VerifyTokenResponse,
    validation_errors,
)
from jobboard.types import BLOB_FIELDS, Role, Upload

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_UPLOAD_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "pdf": "application/pdf",
}


async def _read_upload(field: str, upload: Optional[UploadFile]) -> Optional[Upload]:
    if upload is None or not upload.filename:
        return None
    label = field.replace("_", " ")
    extension = upload.filename.rsplit(".", 1)[-1].lower() if "." in upload.filename else ""
    if extension not in ALLOWED_UPLOAD_TYPES:
        raise ValidationFailed.single(
            field, f"The {label} must be a file of type: png, jpg, jpeg, pdf."
        )
    max_bytes = get_settings().max_upload_bytes
    too_large = ValidationFailed.single(
        field, f"The {label} may not be greater than {max_bytes // 1024} kilobytes."
    )
    if upload.size is not None and upload.size > max_bytes:
        raise too_large
    # Reads at most one byte past the limit when the size was not declared.
    content = await upload.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise too_large
    return Upload(
        filename=upload.filename,
        content=content,
        content_type=upload.content_type or ALLOWED_UPLOAD_TYPES[extension],
    )


async def _read_uploads(role: Role, **files: Optional[UploadFile]) -> dict[str, Upload]:
    """Read the files for ``role``'s blob fields; files for other fields are ignored."""
    uploads = {}
    for blob_field in BLOB_FIELDS[role]:
        read = await _read_upload(blob_field.name, files.get(blob_field.name))
        if read is not None:
            uploads[blob_field.name] = read
    return uploads


def _present(**values: Optional[str]) -> dict[str, str]:
    return {name: value for name, value in values.items() if value is not None}


# Accounts


@router.post("/register", response_model=SignUpResponse, status_code=201)
async def register(
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    confirm_password: Optional[str] = Form(None),
    user_type: Optional[str] = Form(None),
    name: Optional[str] = Form(None),
    phone_number: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    birthday: Optional[str] = Form(None),
    skills: Optional[str] = Form(None),
    industry: Optional[str] = Form(None),
    contact_person_name: Optional[str] = Form(None),
    resume: Optional[UploadFile] = File(None),
    profile_picture: Optional[UploadFile] = File(None),
    company_logo: Optional[UploadFile] = File(None),
    profiles: ProfileService = Depends(get_profile_service),
):
    try:
        form = SignUpForm(
            **_present(
                email=email,
                password=password,
                confirm_password=confirm_password,
                user_type=user_type,
                name=name,
                phone_number=phone_number,
                location=location,
                birthday=birthday,
                skills=skills,
                industry=industry,
                contact_person_name=contact_person_name,
            )
        )
    except ValidationError as e:
        raise ValidationFailed(validation_errors(e.errors())) from e

    uploads = await _read_uploads(
        form.user_type, resume=resume, profile_picture=profile_picture, company_logo=company_logo
    )
    user = await run_in_threadpool(profiles.sign_up, form, uploads)
    return SignUpResponse(message="User created successfully", user=user)


@router.post("/login", response_model=SignInResponse)
def login(payload: SignInRequest, profiles: ProfileService = Depends(get_profile_service)):
    result = profiles.sign_in(payload.email, payload.password)
    return SignInResponse(message="User signed in successfully", **result)


@router.post("/verify", response_model=VerifyTokenResponse)
def verify(
    payload: VerifyTokenRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
):
    verified = identity.verify_token(payload.id_token)
    return VerifyTokenResponse(message="Token is valid", user_id=verified.uid)


@router.post("/logout", response_model=MessageResponse)
def logout(
    uid: str = Depends(get_current_uid),
    profiles: ProfileService = Depends(get_profile_service),
):
    profiles.logout(uid)
    return MessageResponse(message="User logged out successfully")


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    profiles: ProfileService = Depends(get_profile_service),
):
    profiles.forgot_password(payload.email)
    return MessageResponse(message="Password reset link has been sent to your email")


@router.get("/download", response_model=DownloadLinkResponse)
def download(
    path: str = Query(..., description="Object path in storage"),
    profiles: ProfileService = Depends(get_profile_service),
):
    url, expires_in = profiles.download_link(path)
    return DownloadLinkResponse(url=url, expires_in=expires_in)


# Job posts


@router.get("/job-posts")
def list_job_posts(posts: JobPostService = Depends(get_job_post_service)):
    return {"data": posts.list()}


@router.post("/job-posts", response_model=JobPostCreatedResponse, status_code=201)
def create_job_post(
    payload: JobPostCreate,
    uid: str = Depends(get_current_uid),
    posts: JobPostService = Depends(get_job_post_service),
):
    job_id = posts.create(uid, payload)
    return JobPostCreatedResponse(message="Job post created successfully", job_id=job_id)


@router.put("/job-posts/{job_id}")
def update_job_post(
    job_id: str,
    payload: JobPostUpdate,
    uid: str = Depends(get_current_uid),
    posts: JobPostService = Depends(get_job_post_service),
):
    post = posts.update(uid, job_id, payload)
    return {"message": "Job post updated successfully", "job_post": post}


@router.delete("/job-posts/{job_id}", response_model=MessageResponse)
def delete_job_post(
    job_id: str,
    uid: str = Depends(get_current_uid),
    posts: JobPostService = Depends(get_job_post_service),
):
    posts.delete(uid, job_id)
    return MessageResponse(message="Job post deleted successfully")


# Employees


@router.get("/employees")
def show_employee(
    uid: str = Depends(get_current_uid),
    profiles: ProfileService = Depends(get_profile_service),
):
    return {"data": profiles.get(uid, Role.EMPLOYEE)}


@router.put("/employees")
async def update_employee(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    birthday: Optional[str] = Form(None),
    phone_number: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    skills: Optional[str] = Form(None),
    resume: Optional[UploadFile] = File(None),
    profile_picture: Optional[UploadFile] = File(None),
    uid: str = Depends(get_current_uid),
    profiles: ProfileService = Depends(get_profile_service),
):
    fields = _validated_profile_fields(
        Role.EMPLOYEE,
        _present(
            name=name,
            email=email,
            birthday=birthday,
            phone_number=phone_number,
            location=location,
            skills=skills,
        ),
    )
    uploads = await _read_uploads(Role.EMPLOYEE, resume=resume, profile_picture=profile_picture)
    record = await run_in_threadpool(profiles.update, uid, Role.EMPLOYEE, fields, uploads)
    return {"message": "Employee updated successfully", "employee": record}


@router.delete("/employees", response_model=MessageResponse)
def delete_employee(
    uid: str = Depends(get_current_uid),
    profiles: ProfileService = Depends(get_profile_service),
):
    profiles.delete(uid, Role.EMPLOYEE)
    return MessageResponse(message="Employee profile, resume, and account deleted successfully")


@router.put("/employees/password", response_model=MessageResponse)
def change_employee_password(
    payload: ChangePasswordRequest,
    uid: str = Depends(get_current_uid),
    profiles: ProfileService = Depends(get_profile_service),
):
    profiles.change_password(uid, Role.EMPLOYEE, payload.current_password, payload.new_password)
    return MessageResponse(message="Password updated successfully")


@router.get("/employees/list")
def list_employees(profiles: ProfileService = Depends(get_profile_service)):
    return {"data": profiles.list_public(Role.EMPLOYEE)}


@router.get("/employees/{employee_id}")
def view_employee(
    employee_id: str,
    uid: str = Depends(get_current_uid),
    profiles: ProfileService = Depends(get_profile_service),
):
    return {"data": profiles.view_employee(uid, employee_id)}


# Employers


@router.get("/employers")
def show_employer(
    uid: str = Depends(get_current_uid),
    profiles: ProfileService = Depends(get_profile_service),
):
    return {"data": profiles.get(uid, Role.EMPLOYER)}


@router.put("/employers")
async def update_employer(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone_number: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    industry: Optional[str] = Form(None),
    contact_person_name: Optional[str] = Form(None),
    company_logo: Optional[UploadFile] = File(None),
    uid: str = Depends(get_current_uid),
    profiles: ProfileService = Depends(get_profile_service),
):
    fields = _validated_profile_fields(
        Role.EMPLOYER,
        _present(
            name=name,
            email=email,
            phone_number=phone_number,
            location=location,
            industry=industry,
            contact_person_name=contact_person_name,
        ),
    )
    uploads = await _read_uploads(Role.EMPLOYER, company_logo=company_logo)
    record = await run_in_threadpool(profiles.update, uid, Role.EMPLOYER, fields, uploads)
    return {
        "message": "Employer updated successfully",
        "employer": record,
        "company_logo": record.get("company_logo"),
    }


@router.delete("/employers", response_model=MessageResponse)
def delete_employer(
    uid: str = Depends(get_current_uid),
    profiles: ProfileService = Depends(get_profile_service),
):
    profiles.delete(uid, Role.EMPLOYER)
    return MessageResponse(message="Employer profile and account deleted successfully")


@router.put("/employers/password", response_model=MessageResponse)
def change_employer_password(
    payload: ChangePasswordRequest,
    uid: str = Depends(get_current_uid),
    profiles: ProfileService = Depends(get_profile_service),
):
    profiles.change_password(uid, Role.EMPLOYER, payload.current_password, payload.new_password)
    return MessageResponse(message="Password updated successfully")


@router.get("/employers/list")
def list_employers(profiles: ProfileService = Depends(get_profile_service)):
    return {"data": profiles.list_public(Role.EMPLOYER)}


@router.get("/employers/jobs")
def list_own_job_posts(
    uid: str = Depends(get_current_uid),
    posts: JobPostService = Depends(get_job_post_service),
):
    return {"data": posts.list_owned(uid)}


# Job applications


@router.post(
    "/employers/{employer_id}/job_postings/{job_id}/applications",
    response_model=ApplicationCreatedResponse,
    status_code=201,
)
def apply_to_job(
    employer_id: str,
    job_id: str,
    uid: str = Depends(get_current_uid),
    applications: ApplicationService = Depends(get_application_service),
):
    snapshot = applications.apply(uid, employer_id, job_id)
    return ApplicationCreatedResponse(application_data=snapshot)


@router.get("/employers/{employer_id}/job_postings/{job_id}/applications")
def list_job_applications(
    employer_id: str,
    job_id: str,
    uid: str = Depends(get_current_uid),
    applications: ApplicationService = Depends(get_application_service),
):
    return applications.list_for_job(uid, employer_id, job_id)


@router.put("/employers/{employer_id}/job_postings/{job_id}/applications/{application_id}")
def update_job_application(
    employer_id: str,
    job_id: str,
    application_id: str,
    payload: ApplicationStatusUpdate,
    uid: str = Depends(get_current_uid),
    applications: ApplicationService = Depends(get_application_service),
):
    updated = applications.update_status(
        uid, employer_id, job_id, application_id, payload.application_status
    )
    return {"message": "Job application updated successfully", "application_data": updated}


@router.get("/my-applications")
def my_applications(
    uid: str = Depends(get_current_uid),
    applications: ApplicationService = Depends(get_application_service),
):
    return applications.list_mine(uid)


def _validated_profile_fields(role: Role, raw: dict[str, str]) -> dict[str, str]:
    try:
        parsed = PROFILE_UPDATE_SCHEMAS[role](**raw)
    except ValidationError as e:
        raise ValidationFailed(validation_errors(e.errors())) from e
    return parsed.model_dump(exclude_none=True)
