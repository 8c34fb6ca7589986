"""Persistence for the pipeline scoring policy."""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import ValidationError
from app.models import Setting
from app.schemas.scoring import DEFAULT_SCORING_CONFIG, ScoringConfig
from app.services.base_service import BaseService

logger = logging.getLogger(__name__)

SCORING_CONFIG_KEY = "pipeline_scoring_config"


class ScoringConfigService(BaseService):
    """Read and replace the policy stored under ``pipeline_scoring_config``."""

    def get_config(self) -> ScoringConfig:
        row = self.db.get(Setting, SCORING_CONFIG_KEY)
        if row is None or not row.value:
            return DEFAULT_SCORING_CONFIG
        try:
            return ScoringConfig.model_validate(row.value)
        except PydanticValidationError as exc:
            logger.warning(
                "scoring_config.invalid_fallback_default",
                extra={"event": "scoring_config.invalid_fallback_default", "error": str(exc)},
            )
            return DEFAULT_SCORING_CONFIG

    def save_config(self, payload: dict) -> ScoringConfig:
        try:
            config = ScoringConfig.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc

        row = self.db.get(Setting, SCORING_CONFIG_KEY)
        if row is None:
            row = Setting(key=SCORING_CONFIG_KEY)
            self.db.add(row)
        row.value = config.model_dump()
        self.commit()
        logger.info("scoring_config.saved", extra={"event": "scoring_config.saved"})
        return config

    def reset_config(self) -> ScoringConfig:
        row = self.db.get(Setting, SCORING_CONFIG_KEY)
        if row is not None:
            self.db.delete(row)
            self.commit()
        return DEFAULT_SCORING_CONFIG
