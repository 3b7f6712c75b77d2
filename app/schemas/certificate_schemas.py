from typing import Optional
from pydantic import BaseModel, model_validator

from app.models.certificate import AchievementType


class CertificateRequest(BaseModel):
    course_id: Optional[int] = None
    learning_path_id: Optional[int] = None

    @model_validator(mode="after")
    def exactly_one_target(self):
        if (self.course_id is None) == (self.learning_path_id is None):
            raise ValueError("Provide exactly one of course_id or learning_path_id")
        return self

    @property
    def achievement(self) -> tuple[int, AchievementType]:
        if self.course_id is not None:
            return self.course_id, AchievementType.course
        return self.learning_path_id, AchievementType.learning_path
