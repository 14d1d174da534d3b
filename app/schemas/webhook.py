from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

NEW_MESSAGE_EVENT = "message:in:new"


class WassengerMessageData(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    fromNumber: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("fromNumber", "from", "phone"),
    )
    body: Optional[str] = None
    type: Optional[str] = "text"
    fromMe: Optional[bool] = False
    isSelf: Optional[Union[int, bool]] = Field(default=None, validation_alias=AliasChoices("self", "isSelf"))
    flow: Optional[str] = None

    @property
    def is_outbound(self) -> bool:
        return bool(self.fromMe) or self.isSelf in (1, True) or self.flow == "outbound"


class WassengerEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: Optional[str] = None
    data: Optional[WassengerMessageData] = None


class WebhookAck(BaseModel):
    success: bool = True
