"""
Database Schemas for the Marketplace

MongoDB collections are defined below using Pydantic models. Each class name is
converted to lowercase for the collection name (User -> "user").

We will use these collections:
- user: marketplace members who submit listings and leads
- admin: moderators, seeded from configuration
- product: listings going through moderation
- form: contact-form leads
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

CreatorRole = Literal["User", "Admin"]
ListingStatusValue = Literal["Pending", "Approved", "Rejected", "Done"]
LeadStatusValue = Literal["pending", "contacted", "closed"]


class User(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password_hash: str = Field(..., description="BCrypt hash of password")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class Admin(BaseModel):
    email: EmailStr
    password_hash: str = Field(..., description="BCrypt hash of password")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    age: str = "Not specified"
    hourly_rate: float = Field(0, ge=0)
    night_rate: float = Field(0, ge=0)
    phone_no: str = Field(..., min_length=1)
    whatsapp_no: str = ""
    services: List[str] = Field(default_factory=list)
    availability: str = "Available"
    verified: bool = False
    featured: bool = False
    rating: float = Field(0, ge=0, le=5)
    reviews: int = Field(0, ge=0)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    images: List[str] = Field(..., min_length=1, description="Relative /images/... references")
    owner: str = Field(..., description="Reference to user or admin _id")
    created_by_role: CreatorRole
    status: ListingStatusValue = "Pending"

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class Form(BaseModel):
    name: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    phone_no: str = Field(..., min_length=1, max_length=15)
    location: str = ""
    city: str = Field(..., min_length=1)
    state: str = ""
    owner: str = Field(..., description="Reference to user or admin _id")
    user_email: str
    user_name: str
    status: LeadStatusValue = "pending"
