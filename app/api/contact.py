"""
Contact form.

POST /api/contact — store a contact submission
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..models.contact import ContactSubmission

logger = logging.getLogger(__name__)

contact_router = APIRouter(tags=["contact"])


class ContactRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    company: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    service: Optional[str] = Field(default=None, max_length=200)
    message: str = Field(min_length=10, max_length=5000)


class ContactResponse(BaseModel):
    success: bool = True
    message: str
    id: str


@contact_router.post("/contact", response_model=ContactResponse)
async def submit_contact(
    request: ContactRequest,
    db: AsyncSession = Depends(get_db),
):
    """Store a contact form submission."""
    submission = ContactSubmission(**request.model_dump())
    db.add(submission)
    await db.flush()

    logger.info("Contact submission %s (service=%s)", submission.id, request.service)

    return ContactResponse(
        message="Thank you for your message! We'll get back to you soon.",
        id=submission.id,
    )
