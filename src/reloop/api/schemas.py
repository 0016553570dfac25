from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation. Registry rules (null identities,
positive volume, authorization) are enforced by the registry itself so every
transport gets the same answers.
"""

from typing import Optional, Union

from pydantic import BaseModel, Field


class MintRequest(BaseModel):
    holder: str = Field(..., description="Identity the new note is issued to (also recorded as collector)")
    origin: str = Field(..., description="Identity of the oil supplier")
    volume_liters: float = Field(..., description="Collected volume in liters")

    batch_id: Optional[str] = Field(default=None, description="Unique batch id; generated when omitted")
    collection_location: str = Field(default="", description='GPS string, e.g. "51.5074, -0.1278"')
    origin_details: str = Field(default="", description="Free-text origin details (often JSON)")
    metadata_reference: Optional[str] = Field(default=None, description="Opaque metadata URI")


class StatusUpdateRequest(BaseModel):
    caller: str = Field(..., description="Acting identity")
    status: Union[int, str] = Field(..., description="Status name or integer code")


class DeliveryRequest(BaseModel):
    caller: str = Field(..., description="Acting identity; must be the current holder")
    processor: str = Field(..., description="Receiving processor identity")
    delivery_location: str = Field(default="", description="GPS string of the drop-off")
    processor_details: str = Field(default="", description="Free-text processor details")


class VerifyRequest(BaseModel):
    caller: str = Field(..., description="Acting identity; must be the note's processor")
    verified: bool = Field(..., description="Verification outcome")


class TransferRequest(BaseModel):
    caller: str = Field(..., description="Acting identity; must be the current holder")
    to_holder: str = Field(..., description="New holder identity")
