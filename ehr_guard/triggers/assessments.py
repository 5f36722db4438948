"""High-risk assessment scores notify the patient's provider."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ehr_guard.core.models import Assessment, Patient, User
from ehr_guard.triggers.notifications import HIGH_RISK_TOPIC, Notification

logger = logging.getLogger(__name__)


def is_high_risk(assessment: Assessment, thresholds: Mapping[str, int]) -> bool:
    threshold = thresholds.get(assessment.assessment_type)
    if threshold is None or assessment.score is None:
        return False
    return assessment.score >= threshold


async def provider_contact(session: AsyncSession, assessment: Assessment) -> Optional[str]:
    """Email of the patient's primary provider, else of the assessing provider."""
    result = await session.execute(
        select(User.email)
        .join(Patient, Patient.primary_provider_id == User.id)
        .where(Patient.id == assessment.patient_id)
    )
    email = result.scalar_one_or_none()
    if email:
        return email

    result = await session.execute(select(User.email).where(User.id == assessment.provider_id))
    return result.scalar_one_or_none()


async def high_risk_notification(
    session: AsyncSession,
    assessment: Assessment,
    thresholds: Mapping[str, int],
) -> Optional[Notification]:
    """Build the notification for a newly inserted assessment, if it is high risk."""
    if not is_high_risk(assessment, thresholds):
        return None

    contact = await provider_contact(session, assessment)
    logger.info(
        f"High-risk {assessment.assessment_type} score {assessment.score} for patient {assessment.patient_id}"
    )
    return Notification(
        topic=HIGH_RISK_TOPIC,
        payload={
            "patient_id": str(assessment.patient_id),
            "assessment_type": assessment.assessment_type,
            "score": assessment.score,
            "provider_contact": contact,
        },
    )
