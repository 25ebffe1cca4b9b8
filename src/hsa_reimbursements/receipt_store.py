"""S3 operations for storing and serving receipt files."""

import re

import boto3
from botocore.exceptions import ClientError

S3_CLIENT = boto3.client("s3")

RECEIPT_PREFIX = "receipts"

CONTENT_TYPE_SUFFIX = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
}


def store_receipt(
    bucket: str,
    data: bytes,
    content_type: str,
    owner: str,
    expense_id: str,
    receipt_date: str,
    filename: str,
) -> str:
    """Store a receipt file in S3. Returns the object key.

    Naming: receipts/{owner}/{expense_id}/{date}_{filename}{ext}
    Appends _2, _3, etc. on collisions.
    """
    suffix = CONTENT_TYPE_SUFFIX.get(content_type, ".bin")
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename
    name_slug = _sanitize(stem) or "receipt"
    base_name = f"{receipt_date}_{name_slug}"
    folder = f"{RECEIPT_PREFIX}/{_sanitize(owner) or 'unknown'}/{expense_id}"

    receipt_key = f"{folder}/{base_name}{suffix}"
    counter = 2
    while _key_exists(bucket, receipt_key):
        receipt_key = f"{folder}/{base_name}_{counter}{suffix}"
        counter += 1

    S3_CLIENT.put_object(Bucket=bucket, Key=receipt_key, Body=data, ContentType=content_type)
    return receipt_key


def delete_receipt(bucket: str, key: str) -> None:
    """Delete a stored receipt. Deleting a key that is already gone is not an error."""
    S3_CLIENT.delete_object(Bucket=bucket, Key=key)


def receipt_url(bucket: str, key: str, expires_in: int) -> str:
    """Presigned GET URL for a stored receipt."""
    return S3_CLIENT.generate_presigned_url(
        "get_object",
        Params={"Bucket": bucket, "Key": key},
        ExpiresIn=expires_in,
    )


def _key_exists(bucket: str, key: str) -> bool:
    """Check if an S3 key already exists."""
    try:
        S3_CLIENT.head_object(Bucket=bucket, Key=key)
    except ClientError as e:
        if e.response["Error"]["Code"] == "404":
            return False
        raise
    return True


def _sanitize(text: str) -> str:
    """Sanitize text for use in an S3 key: replace non-alphanumeric with underscores."""
    sanitized = re.sub(r"[^A-Za-z0-9]+", "_", text.strip())
    return sanitized.strip("_")
