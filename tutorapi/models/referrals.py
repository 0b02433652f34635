"""
Request models for referral, reward and admin endpoints.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProcessReferralRequest(BaseModel):
    """
    Body of /process-referral.

    action is one of: register, check_activation, complete_conversion
    """
    model_config = ConfigDict(populate_by_name=True)

    referral_code: Optional[str] = Field(default=None, alias="referralCode")
    action: str = Field(..., examples=["register"])


class ConsumeRewardRequest(BaseModel):
    """Body of /consume-convertible-reward."""
    model_config = ConfigDict(populate_by_name=True)

    reward_id: str = Field(..., alias="rewardId")
    convert_to: str = Field(..., alias="convertTo", description="'days' or 'tokens'")


class DeliveryInfo(BaseModel):
    """Where a claimed catalog reward should be delivered."""
    email: str
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None


class ClaimRewardRequest(BaseModel):
    """Body of /claim-reward."""
    model_config = ConfigDict(populate_by_name=True)

    reward_id: str = Field(..., alias="rewardId")
    delivery_info: DeliveryInfo = Field(..., alias="deliveryInfo")


class BlockReferralRequest(BaseModel):
    """Body of /admin/referrals/{id}/block."""
    reason: str = Field(default="manual_review", max_length=500)


class LinkReferralRequest(BaseModel):
    """Body of /admin/link-referral."""
    model_config = ConfigDict(populate_by_name=True)

    invitee_email: str = Field(..., alias="inviteeEmail")
    referral_code: str = Field(..., alias="referralCode")
