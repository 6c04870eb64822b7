"""Vision agent that reports privacy-relevant elements of a reference ad."""

from __future__ import annotations

from pydantic import BaseModel

from adforge.agents.base_agent import BaseAgent
from adforge.schemas.patterns import PrivacyScanReport


class PrivacyScanInput(BaseModel):
    """Input for the privacy scan; the image itself is an attachment."""

    mime_type: str
    filename: str | None = None


class PrivacyScannerAgent(BaseAgent[PrivacyScanInput, PrivacyScanReport]):
    """Detect text, logos, faces and contact details in an uploaded ad."""

    model_tier = "vision"

    @property
    def system_prompt(self) -> str:
        return """You are a privacy compliance reviewer for uploaded advertisement images.

Report ONLY privacy-relevant elements:
- text_density: percentage (0-100) of the image covered by readable text
- detected_text: every readable text string, or an empty list
- has_logos: true if any company or brand logo is visible
- has_faces / face_count: human faces that are visible
- has_contact_info: true if emails, phone numbers or websites are visible

Be thorough; detect ALL text, logos and faces.
Do NOT describe the ad content or products."""

    @property
    def output_type(self) -> type[PrivacyScanReport]:
        return PrivacyScanReport

    def _build_prompt(self, input_data: PrivacyScanInput) -> str:
        return (
            f"Analyze the attached image ({input_data.mime_type}) for privacy concerns "
            "and return the structured report."
        )
