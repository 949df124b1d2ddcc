"""Request/response models for the jobs API.

Payload models validate `data` for the built-in job types at the
submission boundary; a rejected payload never creates a job.
"""

from typing import Any, Dict, Literal, Optional, Type

from pydantic import BaseModel, Field


class JobSubmitRequest(BaseModel):
    type: str = Field(min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


class JobSubmitResponse(BaseModel):
    job_id: str
    status: str
    message: str


class ProjectGenerationPayload(BaseModel):
    project_name: str = Field(min_length=1)
    template_id: Optional[str] = None
    user_id: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    deployment_platform: str = "other"


class TemplateValidationPayload(BaseModel):
    template_id: Optional[str] = None


class DeploymentPayload(BaseModel):
    project_id: str = Field(min_length=1)
    platform: Literal["vercel", "netlify", "railway", "github"]
    environment_variables: Dict[str, str] = Field(default_factory=dict)
    auto_deploy: bool = False


PAYLOAD_MODELS: Dict[str, Type[BaseModel]] = {
    "project-generation": ProjectGenerationPayload,
    "template-validation": TemplateValidationPayload,
    "deployment": DeploymentPayload,
}


def validate_payload(job_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and normalise `data` for known job types.

    Unknown types pass through untouched; the queue fails them.
    Raises pydantic.ValidationError on bad payloads.
    """
    model = PAYLOAD_MODELS.get(job_type)
    if model is None:
        return data
    return model.model_validate(data).model_dump()
