"""
Request Models for App Ideas Finder

Pure Pydantic DTOs for the account, feedback, marketing and email routes.
Fields arrive camelCase from the frontend. Required-field checks that the
routes report as 400 live in ``validated()`` helpers; only malformed typed
fields such as ``EmailStr`` fail the body with 422.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.infrastructure.exceptions import ValidationError


MAX_TEXT_LENGTH = 2000
MIN_FEEDBACK_LENGTH = 5

_email_adapter = TypeAdapter(EmailStr)


def is_valid_email(value: Optional[str]) -> bool:
    """Whether ``value`` parses as an ``EmailStr``; used where bad entries are dropped."""
    if not value:
        return False
    try:
        _email_adapter.validate_python(value)
    except PydanticValidationError:
        return False
    return True


class CamelModel(BaseModel):
    """Accepts both the camelCase alias and the field name."""
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Account
# =============================================================================

class DeletionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    DECLINED = "declined"


class DeletionRequestCreate(CamelModel):
    reason: Optional[str] = None

    def trimmed_reason(self) -> Optional[str]:
        if not self.reason or not self.reason.strip():
            return None
        return self.reason.strip()[:MAX_TEXT_LENGTH]


class DeletionRequestUpdate(CamelModel):
    status: Optional[str] = None
    admin_note: Optional[str] = Field(default=None, alias="adminNote")

    def validated_status(self) -> DeletionStatus:
        try:
            return DeletionStatus(self.status)
        except ValueError:
            raise ValidationError(f"Invalid status: {self.status}", field="status")

    def trimmed_note(self) -> Optional[str]:
        if self.admin_note is None:
            return None
        return self.admin_note.strip()[:MAX_TEXT_LENGTH] or None


# =============================================================================
# Feedback
# =============================================================================

class FeedbackCreate(CamelModel):
    message: Optional[str] = None
    category: str = "general"
    page_url: Optional[str] = Field(default=None, alias="pageUrl")
    allow_contact: bool = Field(default=True, alias="allowContact")

    def validated_message(self) -> str:
        message = (self.message or "").strip()
        if len(message) < MIN_FEEDBACK_LENGTH:
            raise ValidationError(
                f"Feedback must be at least {MIN_FEEDBACK_LENGTH} characters", field="message"
            )
        if len(message) > MAX_TEXT_LENGTH:
            raise ValidationError(
                f"Feedback must be at most {MAX_TEXT_LENGTH} characters", field="message"
            )
        return message


class FeedbackUpdate(CamelModel):
    archived: bool


# =============================================================================
# Marketing
# =============================================================================

class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_PLAN = "free_plan"


class CouponCreate(CamelModel):
    code: Optional[str] = None
    discount_type: Optional[str] = Field(default=None, alias="discountType")
    discount_value: Optional[float] = Field(default=None, alias="discountValue")
    free_plan_id: Optional[str] = Field(default=None, alias="freePlanId")
    max_uses: Optional[int] = Field(default=None, alias="maxUses")
    valid_from: Optional[datetime] = Field(default=None, alias="validFrom")
    valid_until: Optional[datetime] = Field(default=None, alias="validUntil")
    description: Optional[str] = None
    stripe_coupon_id: Optional[str] = Field(default=None, alias="stripeCouponId")
    stripe_promotion_code: Optional[str] = Field(default=None, alias="stripePromotionCode")

    def validated_type(self) -> DiscountType:
        if not self.code or not self.code.strip() or not self.discount_type:
            raise ValidationError("Code and discount type are required")
        try:
            return DiscountType(self.discount_type)
        except ValueError:
            raise ValidationError(
                f"Invalid discount type: {self.discount_type}", field="discountType"
            )


class WaitlistAddRequest(CamelModel):
    email: Optional[EmailStr] = None
    source: str = "admin"

    def validated_email(self) -> str:
        if not self.email:
            raise ValidationError("Valid email required", field="email")
        return self.email.lower()


class UnsubscribeRequest(CamelModel):
    token: Optional[str] = None


# =============================================================================
# Email campaigns
# =============================================================================

class RecipientType(str, Enum):
    WAITLIST = "waitlist"
    ALL_USERS = "all_users"
    SUBSCRIBERS = "subscribers"
    ADHOC = "adhoc"


def parse_recipient_type(value: Optional[str]) -> RecipientType:
    if not value:
        raise ValidationError("Recipient type required", field="type")
    try:
        return RecipientType(value)
    except ValueError:
        raise ValidationError("Invalid recipient type", field="type")


class SendCampaignRequest(CamelModel):
    subject: Optional[str] = None
    html_content: Optional[str] = Field(default=None, alias="htmlContent")
    text_content: Optional[str] = Field(default=None, alias="textContent")
    recipient_type: Optional[str] = Field(default=None, alias="recipientType")
    adhoc_emails: Optional[list[str]] = Field(default=None, alias="adhocEmails")
    reply_to: Optional[str] = Field(default=None, alias="replyTo")

    def validated_type(self) -> RecipientType:
        if not self.subject or not self.html_content or not self.recipient_type:
            raise ValidationError("Missing required fields")
        recipient_type = parse_recipient_type(self.recipient_type)
        if recipient_type == RecipientType.ADHOC and not self.adhoc_emails:
            raise ValidationError("Adhoc emails required", field="adhocEmails")
        return recipient_type


class PreviewRequest(CamelModel):
    html_content: Optional[str] = Field(default=None, alias="htmlContent")


class TemplateCreate(CamelModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    html_content: Optional[str] = Field(default=None, alias="htmlContent")
    text_content: Optional[str] = Field(default=None, alias="textContent")


class TemplateUpdate(TemplateCreate):
    id: Optional[str] = None

    def changes(self) -> dict[str, Any]:
        """Non-empty fields only; text content may be cleared explicitly."""
        updates: dict[str, Any] = {}
        if self.name:
            updates["name"] = self.name
        if self.subject:
            updates["subject"] = self.subject
        if self.html_content:
            updates["html_content"] = self.html_content
        if self.text_content is not None:
            updates["text_content"] = self.text_content
        return updates


class EmailSettingsUpdate(CamelModel):
    reply_to_email: Optional[EmailStr] = Field(default=None, alias="replyToEmail")

    def validated_email(self) -> str:
        if not self.reply_to_email:
            raise ValidationError("Reply-to email required", field="replyToEmail")
        return self.reply_to_email


# =============================================================================
# Analysis
# =============================================================================

class GrokProxyRequest(CamelModel):
    messages: list[dict[str, Any]] = Field(default_factory=list)
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, alias="maxTokens")
