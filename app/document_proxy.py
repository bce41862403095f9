"""Capability checks for the stored-document proxy."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app import crud
from app.auth import User
from app.core.clock import as_utc
from app.models import GlobalPartnerApplication, PartnerTermsAcceptance, VisaContractViewToken, VisaOrder

logger = logging.getLogger(__name__)

# Order and application ids are UUID-like; shorter leading segments are
# folder names, not owner ids.
MIN_OWNER_SEGMENT_LENGTH = 21


@dataclass
class AccessDecision:
    granted: bool
    principal: str = "anonymous"


def _token_principal(db: Session, token: str, now: datetime) -> str | None:
    view_token = db.execute(
        select(VisaContractViewToken).where(VisaContractViewToken.token == token)
    ).scalars().first()
    if view_token is not None:
        expires_at = as_utc(view_token.expires_at)
        if expires_at is None or expires_at > now:
            return f"token-visa-{view_token.id}"

    acceptance = db.execute(
        select(PartnerTermsAcceptance).where(PartnerTermsAcceptance.view_token == token)
    ).scalars().first()
    if acceptance is not None:
        return f"token-partner-{acceptance.id}"
    return None


def _owner_segment(path: str) -> str | None:
    segment = path.strip("/").split("/")[0]
    if len(segment) < MIN_OWNER_SEGMENT_LENGTH:
        return None
    return segment


def _seller_owns_path(db: Session, seller_id: int, path: str) -> bool:
    owner_id = _owner_segment(path)
    if owner_id is None:
        return False

    order = db.execute(
        select(VisaOrder.id).where(
            VisaOrder.seller_id == seller_id,
            or_(VisaOrder.service_request_id == owner_id, VisaOrder.client_id == owner_id),
        )
    ).first()
    if order is not None:
        return True

    application = db.execute(
        select(GlobalPartnerApplication.id).where(
            GlobalPartnerApplication.seller_id == seller_id,
            GlobalPartnerApplication.id == owner_id,
        )
    ).first()
    return application is not None


def check_document_access(
    db: Session,
    bucket: str,
    path: str,
    *,
    token: str | None,
    user: User | None,
    now: datetime,
) -> AccessDecision:
    """Decide whether a capability token or signed-in principal may read ``bucket/path``.

    Grants, in order: an unexpired view token, an admin user, or an active
    seller who owns the order or partner application named by the first
    path segment.
    """
    now = as_utc(now)
    if token:
        principal = _token_principal(db, token, now)
        if principal:
            logger.info("[PROXY] Access to %s/%s granted via %s", bucket, path, principal)
            return AccessDecision(True, principal)

    if user is not None:
        if user.is_admin():
            return AccessDecision(True, f"user-{user.id}")
        seller = crud.get_seller_for_user(db, user, active_only=True)
        if seller is not None and _seller_owns_path(db, seller.id, path):
            return AccessDecision(True, f"user-{user.id}")

    logger.warning(
        "[PROXY] Blocked access to %s/%s. Token provided: %s, Auth provided: %s",
        bucket,
        path,
        bool(token),
        user is not None,
    )
    return AccessDecision(False)
