# pallet/services/share.py
from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Optional

import qrcode
from fastapi import HTTPException, Request, status
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.core import storage
from pallet.core.config import settings
from pallet.core.responses import client_ip
from pallet.db.base import utcnow
from pallet.models.share import CustomerLog, PalletShare

LOGGER = logging.getLogger(__name__)

QRCODE_BORDER = 2


def generate_share_token() -> str:
    # 128 bits, hex encoded
    return secrets.token_hex(16)


def public_origin(request: Optional[Request]) -> str:
    if settings.PUBLIC_BASE_URL:
        return settings.PUBLIC_BASE_URL.rstrip("/")
    if request is None:
        return ""
    origin = request.headers.get("origin")
    if origin:
        return origin.rstrip("/")
    return str(request.base_url).rstrip("/")


def share_url(request: Optional[Request], token: str) -> str:
    return f"{public_origin(request)}/share/{token}"


async def get_share_by_token(db: AsyncSession, token: str) -> PalletShare:
    """
    Unknown tokens are a plain 404 with no hint about why.
    """
    token = (token or "").strip()
    share = None
    if token:
        stmt = select(PalletShare).where(PalletShare.token == token)
        share = (await db.execute(stmt)).scalar_one_or_none()
    if share is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Share link not found")
    return share


async def record_visit(db: AsyncSession, share_id: int, request: Optional[Request]) -> datetime:
    """
    Count the visit, then append a customer log. The counter is committed
    first; the log insert is best-effort and never fails the request.
    Returns the visit time written to last_accessed.
    """
    now = utcnow()
    await db.execute(
        update(PalletShare)
        .where(PalletShare.id == share_id)
        .values(access_count=PalletShare.access_count + 1, last_accessed=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    try:
        db.add(
            CustomerLog(
                share_id=share_id,
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent") if request else None,
                access_time=now,
            )
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        LOGGER.warning("Could not write customer log for share %s", share_id, exc_info=True)
    return now


def write_qrcode(token: str, url: str, size: int) -> str:
    """
    Render url as a PNG about size x size pixels under uploads/qrcode/.
    Returns the canonical web path.
    """
    qr = qrcode.QRCode(border=QRCODE_BORDER)
    qr.add_data(url)
    qr.make(fit=True)
    modules = qr.modules_count + 2 * QRCODE_BORDER
    qr.box_size = max(1, size // modules)
    img = qr.make_image(fill_color="black", back_color="white")

    stamp = int(datetime.now().timestamp() * 1000)
    name = f"{token}_{stamp}.png"
    target = storage.upload_root() / storage.QRCODE_DIR / name
    target.parent.mkdir(parents=True, exist_ok=True)
    img.save(str(target))
    return storage.web_path(storage.QRCODE_DIR, name)
