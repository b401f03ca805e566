from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ConsumerResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    phone: str
    kyc_status: str = Field(alias="kycStatus")
    dealer_id: Optional[int] = Field(default=None, alias="dealerId")
