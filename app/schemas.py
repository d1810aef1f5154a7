"""
Request bodies for the command proxy and the admin endpoints.
Field aliases match the dashboard's camelCase payloads.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EvolutionCommandRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: str = ""
    instance_name: Optional[str] = Field(default=None, alias="instanceName")
    instance_id: Optional[str] = Field(default=None, alias="instanceId")
    phone: Optional[str] = None
    message: Optional[str] = None
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class RenameInstanceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    instance_name: str = Field(..., alias="instanceName")


class ConversationStatusRequest(BaseModel):
    status: str
