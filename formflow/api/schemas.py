from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, Field


class EntryRequest(BaseModel):
    resumeKey: str


class SectionEdit(BaseModel):
    # Attachment fields (photoIdFile, signatureFile) travel as base64 strings
    data: Dict[str, Any] = Field(default_factory=dict)


class WorkflowView(BaseModel):
    state: Literal["ENTRY", "SECTION", "COMPLETE", "BLOCKED"]
    cursor: int
    totalSteps: int
    section: Optional[str] = None
    label: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict)
    apiError: Optional[str] = None
    entryError: Optional[str] = None
    blockedReason: Optional[str] = None
    blockedMessage: Optional[str] = None
    submitting: bool = False
    canAdvance: bool = False
    canRetreat: bool = False
    resumeKey: str = ""
    resumeMode: bool = False
    customerId: Optional[int] = None
    submitted: bool = False


class TransitionResponse(BaseModel):
    status: Literal["success", "ignored", "rejected"] = "success"
    view: WorkflowView
