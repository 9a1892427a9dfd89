"""Rule evaluator verdict"""

from typing import Optional
from pydantic import BaseModel, ConfigDict


class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_anomalous: bool
    reason: Optional[str] = None
