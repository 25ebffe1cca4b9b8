"""Receipt images and PDFs attached to expenses."""

import io
import logging
from dataclasses import dataclass

from botocore.exceptions import ClientError
from PIL import Image
from sqlalchemy import select
from sqlalchemy.orm import Session

from hsa_reimbursements import receipt_store
from hsa_reimbursements.auth import RequestContext
from hsa_reimbursements.errors import NotFoundError, UnsupportedMediaError, ValidationError
from hsa_reimbursements.expenses import get_expense
from hsa_reimbursements.models import Expense, ReceiptImage

logger = logging.getLogger(__name__)

SUPPORTED_CONTENT_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
    }
)

_CONTENT_TYPE_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}

# Pillow format name expected for each image content type.
_PILLOW_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/webp": "WEBP",
}

PDF_MAGIC = b"%PDF-"


@dataclass
class Upload:
    filename: str
    content_type: str
    data: bytes


def normalize_content_type(content_type: str | None) -> str:
    value = (content_type or "").split(";", 1)[0].strip().lower()
    return _CONTENT_TYPE_ALIASES.get(value, value)


def check_media(content_type: str, data: bytes) -> None:
    """Ensure the payload really is the declared image or PDF type."""
    if content_type not in SUPPORTED_CONTENT_TYPES:
        raise UnsupportedMediaError(content_type)

    if content_type == "application/pdf":
        if not data.startswith(PDF_MAGIC):
            raise UnsupportedMediaError(content_type, "File is not a valid PDF")
        return

    try:
        with Image.open(io.BytesIO(data)) as img:
            detected = img.format
            img.verify()
    except Image.DecompressionBombError:
        raise UnsupportedMediaError(content_type, "Image dimensions are too large") from None
    except (OSError, SyntaxError, ValueError):
        raise UnsupportedMediaError(content_type, "File is not a valid image") from None

    if detected != _PILLOW_FORMATS[content_type]:
        raise UnsupportedMediaError(content_type, f"File content is {detected}, not {content_type}")


def upload_receipt(
    session: Session,
    ctx: RequestContext,
    expense_id: str,
    upload: Upload,
    *,
    bucket: str,
    max_bytes: int,
) -> ReceiptImage:
    """Validate, store and record a receipt file for one of the caller's expenses."""
    expense = get_expense(session, ctx, expense_id)

    content_type = normalize_content_type(upload.content_type)
    if not upload.data:
        raise ValidationError("Uploaded file is empty")
    if len(upload.data) > max_bytes:
        raise ValidationError(f"Uploaded file exceeds the {max_bytes} byte limit")
    check_media(content_type, upload.data)

    filename = upload.filename or "receipt"
    key = receipt_store.store_receipt(
        bucket,
        upload.data,
        content_type,
        ctx.user_id,
        expense.id,
        expense.date_paid.isoformat(),
        filename,
    )

    image = ReceiptImage(
        expense=expense,
        storage_key=key,
        filename=filename,
        mime_type=content_type,
        size_bytes=len(upload.data),
    )
    session.add(image)
    try:
        session.commit()
    except Exception:
        session.rollback()
        receipt_store.delete_receipt(bucket, key)
        raise

    logger.info("Stored receipt %s for expense %s at %s (%d bytes)", image.id, expense.id, key, len(upload.data))
    return image


def get_receipt(session: Session, ctx: RequestContext, image_id: str) -> ReceiptImage:
    stmt = (
        select(ReceiptImage)
        .join(ReceiptImage.expense)
        .where(ReceiptImage.id == image_id, Expense.user_id == ctx.user_id)
    )
    image = session.scalars(stmt).one_or_none()
    if image is None:
        raise NotFoundError("Image", image_id)
    return image


def list_receipts(session: Session, ctx: RequestContext, expense_id: str) -> list[ReceiptImage]:
    """Receipts for one expense, oldest first."""
    expense = get_expense(session, ctx, expense_id)
    stmt = (
        select(ReceiptImage)
        .where(ReceiptImage.expense_id == expense.id)
        .order_by(ReceiptImage.created_at, ReceiptImage.id)
    )
    return list(session.scalars(stmt))


def delete_receipt(session: Session, ctx: RequestContext, image_id: str, *, bucket: str) -> ReceiptImage:
    """Delete the record, then its stored object. Returns the removed record.

    A stored object that fails to delete is logged and left behind.
    """
    image = get_receipt(session, ctx, image_id)
    session.delete(image)
    session.commit()
    try:
        receipt_store.delete_receipt(bucket, image.storage_key)
    except ClientError:
        logger.exception("Failed to delete stored receipt %s", image.storage_key)
    logger.info("Deleted receipt %s from expense %s", image.id, image.expense_id)
    return image
