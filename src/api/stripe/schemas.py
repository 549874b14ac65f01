from pydantic import BaseModel


class WebhookReceipt(BaseModel):
    received: bool
    status: str
    event_type: str
    ms_member_id: str | None = None
    reason: str | None = None
