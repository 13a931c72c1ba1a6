"""
Pydantic schemas for the job board API.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Iterable, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, Field, ValidationInfo, field_validator

from jobboard.types import PROFILE_FIELDS, Role

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")

Number = Union[int, float]


def _validate_email(value: str) -> str:
    if not EMAIL_PATTERN.match(value):
        raise ValueError("The email must be a valid email address.")
    return value.lower()


Email = Annotated[str, AfterValidator(_validate_email)]


def validation_errors(errors: Iterable[dict[str, Any]]) -> dict[str, list[str]]:
    """
    Group pydantic error dicts by top-level field name, dropping the
    ``body``/``query`` prefix. Union members (``min_salary.int``) fold into
    their field.
    """
    grouped: dict[str, list[str]] = {}
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "form")]
        field = loc[0] if loc else "request"
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages = grouped.setdefault(field, [])
        if message not in messages:
            messages.append(message)
    return grouped


class SignUpForm(BaseModel):
    email: Email
    password: str = Field(..., min_length=8)
    confirm_password: Optional[str] = None
    user_type: Role
    name: str = Field(..., min_length=1, max_length=255)
    phone_number: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    birthday: Optional[str] = None
    skills: Optional[str] = None
    industry: Optional[str] = None
    contact_person_name: Optional[str] = None

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value is not None and value != info.data.get("password"):
            raise ValueError("The confirm password and password must match.")
        return value

    def missing_role_fields(self) -> list[str]:
        required = (
            ("birthday", "skills")
            if self.user_type == Role.EMPLOYEE
            else ("industry", "contact_person_name")
        )
        return [name for name in required if not getattr(self, name)]

    def profile_fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in PROFILE_FIELDS[self.user_type]}


class EmployeeProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[Email] = None
    birthday: Optional[str] = None
    phone_number: Optional[str] = Field(None, max_length=15)
    location: Optional[str] = Field(None, max_length=255)
    skills: Optional[str] = None


class EmployerProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[Email] = None
    phone_number: Optional[str] = Field(None, max_length=15)
    location: Optional[str] = Field(None, max_length=255)
    industry: Optional[str] = None
    contact_person_name: Optional[str] = None


PROFILE_UPDATE_SCHEMAS = {
    Role.EMPLOYEE: EmployeeProfileUpdate,
    Role.EMPLOYER: EmployerProfileUpdate,
}


class SignInRequest(BaseModel):
    email: Email
    password: str = Field(..., min_length=1)


class SignInResponse(BaseModel):
    message: str
    uid: str
    id_token: str
    user_type: Role


class UserSummary(BaseModel):
    uid: str
    email: str
    user_type: Role


class SignUpResponse(BaseModel):
    message: str
    user: UserSummary


class VerifyTokenRequest(BaseModel):
    id_token: str = Field(..., min_length=1)


class VerifyTokenResponse(BaseModel):
    message: str
    user_id: str


class ForgotPasswordRequest(BaseModel):
    email: Email


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)
    confirm_password: str = Field(..., min_length=8)

    @field_validator("new_password")
    @classmethod
    def differs_from_current(cls, value: str, info: ValidationInfo) -> str:
        if value == info.data.get("current_password"):
            raise ValueError("The new password and current password must be different.")
        return value

    @field_validator("confirm_password")
    @classmethod
    def matches_new(cls, value: str, info: ValidationInfo) -> str:
        if value != info.data.get("new_password"):
            raise ValueError("The confirm password and new password must match.")
        return value


class MessageResponse(BaseModel):
    message: str


class DownloadLinkResponse(BaseModel):
    url: str
    expires_in: int


class JobPostCreate(BaseModel):
    job_title: str = Field(..., min_length=1, max_length=255)
    job_description: str = Field(..., min_length=1)
    min_salary: Optional[Number] = Field(None, ge=0)
    max_salary: Optional[Number] = Field(None, ge=0)
    salary: Optional[Number] = Field(None, ge=0)
    location: str = Field(..., min_length=1)
    employment_type: Optional[str] = Field(None, min_length=1)
    skills_required: str = Field(..., min_length=1)


class JobPostUpdate(BaseModel):
    job_title: Optional[str] = Field(None, min_length=1, max_length=255)
    job_description: Optional[str] = Field(None, min_length=1)
    min_salary: Optional[Number] = Field(None, ge=0)
    max_salary: Optional[Number] = Field(None, ge=0)
    salary: Optional[Number] = Field(None, ge=0)
    location: Optional[str] = Field(None, min_length=1)
    employment_type: Optional[str] = Field(None, min_length=1)
    skills_required: Optional[str] = Field(None, min_length=1)


class JobPostCreatedResponse(BaseModel):
    message: str
    job_id: str


class ApplicationStatusUpdate(BaseModel):
    application_status: str = Field(..., min_length=1, max_length=64)


class ApplicationCreatedResponse(BaseModel):
    application_data: dict


class HealthResponse(BaseModel):
    status: Literal["healthy"]
