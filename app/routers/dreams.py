"""
Router de sonhos: interpretação (ação cobrável), histórico e exportação
"""
import logging
from datetime import datetime
from typing import List
from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from uuid import UUID
from app.config import settings
from app.database import get_db
from app.dependencies.auth import get_current_user, require_addon
from app.exceptions import NotFound
from app.middleware.rate_limit import limiter
from app.models.dream import Dream
from app.schemas.dream import DreamInterpretRequest, DreamResponse, TherapistExportResponse
from app.services.entitlement_store import EntitlementStore
from app.services.interpreter import interpret_dream
from app.services.quota_gate import QuotaGate

logger = logging.getLogger(__name__)
router = APIRouter()

THERAPIST_DISCLAIMER = (
    "This document is a reflective journaling aid generated by an AI model. "
    "It is not a clinical assessment."
)


def _get_owned_dream(db: Session, dream_id: UUID, user_id: UUID) -> Dream:
    dream = db.query(Dream).filter(
        Dream.id == dream_id,
        Dream.user_id == user_id,
        Dream.is_deleted.is_(False)
    ).first()
    if not dream:
        raise NotFound("Dream not found")
    return dream


def _save_dream(db: Session, user_id: UUID, body: DreamInterpretRequest, action_type: str, source: str, interpretation: dict) -> Dream:
    dream = Dream(
        user_id=user_id,
        dream_text=body.dream_text,
        interpretation_type=action_type,
        language=body.language,
        interpretation=interpretation,
        charged_from=source,
    )
    db.add(dream)
    db.commit()
    db.refresh(dream)
    return dream


@router.post("/dreams/interpret", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_INTERPRET)
async def interpret(
    request: Request,
    body: DreamInterpretRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """
    Interpreta um sonho.

    Fluxo: gate (permissão) -> LLM -> salvar sonho -> consumo.
    Se o LLM falhar, nada é consumido (502).
    """
    gate = QuotaGate(EntitlementStore(db))
    decision = await run_in_threadpool(gate.check, user_id, body.interpretation_type)

    interpretation = await interpret_dream(body.dream_text, decision.action_type, body.language)

    dream = await run_in_threadpool(
        _save_dream,
        db,
        user_id,
        body,
        decision.action_type,
        decision.source,
        interpretation.model_dump(by_alias=True),
    )
    await run_in_threadpool(gate.consume, decision)

    logger.info(f"Dream interpreted: dream_id={dream.id}, user_id={user_id}, type={decision.action_type}, source={decision.source}")
    return {
        "dream": DreamResponse.model_validate(dream),
        "charged_from": decision.source,
        "cost": decision.cost,
    }


@router.get("/dreams", response_model=List[DreamResponse])
def list_dreams(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    return db.query(Dream).filter(
        Dream.user_id == user_id,
        Dream.is_deleted.is_(False)
    ).order_by(Dream.created_at.desc()).limit(20).all()


@router.get("/dreams/{dream_id}", response_model=DreamResponse)
def get_dream(
    dream_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    return _get_owned_dream(db, dream_id, user_id)


@router.delete("/dreams/{dream_id}")
def delete_dream(
    dream_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    dream = _get_owned_dream(db, dream_id, user_id)
    dream.is_deleted = True
    db.commit()
    logger.info(f"Dream deleted: dream_id={dream_id}, user_id={user_id}")
    return {"message": "Dream deleted"}


@router.get("/dreams/{dream_id}/therapist-export", response_model=TherapistExportResponse)
def therapist_export(
    dream_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(require_addon("therapist_pdf"))
):
    """Documento estruturado para levar ao terapeuta (exige add-on therapist_pdf)."""
    dream = _get_owned_dream(db, dream_id, user_id)
    user = EntitlementStore(db).require_user(user_id)
    interpretation = dream.interpretation or {}

    return {
        "dream_id": dream.id,
        "generated_at": datetime.utcnow(),
        "client_display_name": user.display_name,
        "dream_date": dream.created_at,
        "dream_text": dream.dream_text,
        "interpretation_type": dream.interpretation_type,
        "main_themes": interpretation.get("mainThemes", []),
        "emotional_tone": interpretation.get("emotionalTone"),
        "symbols": interpretation.get("symbols", []),
        "personal_insight": interpretation.get("personalInsight"),
        "guidance": interpretation.get("guidance"),
        "disclaimer": THERAPIST_DISCLAIMER,
    }


@router.get("/usage")
def get_usage(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user)
):
    """Contadores de assinatura, cota gratuita, saldo e tabela de custos"""
    return QuotaGate(EntitlementStore(db)).usage_summary(user_id)
