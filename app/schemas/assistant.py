from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AssistantType(str, Enum):
    BIBLICAL = "biblical"
    SALES = "sales"
    SUPPORT = "support"


class Assistant(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    external_id: str = Field(alias="assistantId")
    type: AssistantType
    description: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    enabled: bool = True


class AssistantRoster(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    assistants: List[Assistant] = Field(default_factory=list)
    default_assistant_id: Optional[str] = Field(default=None, alias="defaultAssistantId")

    @property
    def enabled(self) -> List[Assistant]:
        return [assistant for assistant in self.assistants if assistant.enabled]


class AssistantSelectionRequest(BaseModel):
    message: str
    assistant_rules: Optional[str] = None


class AssistantSelectionResponse(BaseModel):
    intent: str
    tier: Optional[str] = None
    assistant_id: Optional[str] = None
    assistant_name: Optional[str] = None
    assistant_type: Optional[str] = None
    external_assistant_id: Optional[str] = None
    enabled_assistants: int = 0
