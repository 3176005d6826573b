"""
Form bodies accepted by the POST routes.

HTML forms post every input, filled or not, so blank fields are dropped before
validation and the model defaults apply.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from utils import parse_datetime


class FormModel(BaseModel):
    @model_validator(mode="before")
    @classmethod
    def drop_blank_fields(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if not (isinstance(v, str) and not v.strip())}
        return data


class LoginForm(FormModel):
    username: str
    password: str


class ParticipantForm(FormModel):
    participant_first_name: str = Field(min_length=1, max_length=100)
    participant_last_name: str = Field(min_length=1, max_length=100)
    participant_email: EmailStr
    participant_dob: Optional[date] = None
    participant_phone: Optional[str] = Field(default=None, max_length=30)
    participant_city: Optional[str] = Field(default=None, max_length=100)
    participant_state: Optional[str] = Field(default=None, max_length=50)
    participant_zip: Optional[str] = Field(default=None, max_length=20)
    participant_school_or_employer: Optional[str] = Field(default=None, max_length=200)
    participant_field_of_interest: Optional[str] = Field(default=None, max_length=200)
    participant_role: Literal["admin", "participant"] = "participant"


class SignupForm(ParticipantForm):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)

    def participant_values(self) -> dict:
        values = self.model_dump(exclude={"username", "password"})
        # self sign-up never grants admin
        values["participant_role"] = "participant"
        return values


class UserForm(FormModel):
    """Add-user form: link an existing participant, create a new one ('new'), or none."""
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)
    participant_id: Optional[Union[int, Literal["new"]]] = None
    participant_first_name: Optional[str] = None
    participant_last_name: Optional[str] = None
    participant_email: Optional[EmailStr] = None
    participant_dob: Optional[date] = None
    participant_phone: Optional[str] = None
    participant_city: Optional[str] = None
    participant_state: Optional[str] = None
    participant_zip: Optional[str] = None
    participant_school_or_employer: Optional[str] = None
    participant_field_of_interest: Optional[str] = None
    participant_role: Literal["admin", "participant"] = "participant"

    @property
    def wants_new_participant(self) -> bool:
        return self.participant_id == "new"

    def participant_values(self) -> dict:
        return self.model_dump(include=set(ParticipantForm.model_fields))


class UserEditForm(FormModel):
    username: str = Field(min_length=1, max_length=100)
    # blank keeps the current password
    password: Optional[str] = None
    participant_id: Optional[int] = None
    participant_role: Literal["admin", "participant"] = "participant"


class EventTemplateForm(FormModel):
    event_name: str = Field(min_length=1, max_length=200)
    event_type: Optional[str] = Field(default=None, max_length=100)
    event_description: Optional[str] = None


class OccurrenceForm(FormModel):
    template_id: int
    event_datetime_start: datetime
    event_datetime_end: Optional[datetime] = None
    event_location: Optional[str] = Field(default=None, max_length=200)
    event_capacity: Optional[int] = Field(default=None, ge=0)
    event_registration_deadline: Optional[datetime] = None

    @field_validator("event_datetime_start", "event_datetime_end", "event_registration_deadline", mode="before")
    @classmethod
    def normalize_datetime(cls, value):
        return parse_datetime(value) if isinstance(value, str) else value


class SurveyForm(FormModel):
    satisfaction: int = Field(ge=1, le=5)
    usefulness: int = Field(ge=1, le=5)
    instructor: int = Field(ge=1, le=5)
    recommendation: int = Field(ge=0, le=10)
    comments: Optional[str] = Field(default=None, max_length=2000)


class MilestoneForm(FormModel):
    milestone_title: str = Field(min_length=1, max_length=200)
    milestone_date: date
    participant_id: int


class DonationForm(FormModel):
    participant_id: Optional[int] = None
    donation_amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    donation_date: Optional[date] = None


class PublicDonationForm(FormModel):
    donation_amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
