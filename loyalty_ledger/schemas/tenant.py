from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SettingsUpdate(BaseModel):
    homeCurrency: Optional[str] = None
    # snake_case keys, e.g. burn_rate, welcome_bonus_points, fraud_high_amount_minor
    settings: Dict[str, Any] = Field(default_factory=dict)
