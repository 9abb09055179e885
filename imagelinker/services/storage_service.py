import logging
import re
from dataclasses import dataclass
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

logger = logging.getLogger(__name__)

IMAGE_KEY_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp|bmp|svg)$", re.IGNORECASE)


class StorageListingError(Exception):
    """The bucket could not be listed completely."""


@dataclass(frozen=True)
class StorageObject:
    name: str  # full object key, may contain folders
    size: int = 0

    @property
    def filename(self):
        return self.name.rsplit("/", 1)[-1]


def _get_client():
    return boto3.client(
        "s3",
        endpoint_url=current_app.config["S3_ENDPOINT_URL"] or None,
        aws_access_key_id=current_app.config["S3_ACCESS_KEY"],
        aws_secret_access_key=current_app.config["S3_SECRET_KEY"],
        region_name=current_app.config["S3_REGION"],
        config=BotoConfig(signature_version="s3v4"),
    )


def is_image_key(storage_key):
    return bool(IMAGE_KEY_RE.search(storage_key))


def list_images(page_size=None, on_page=None):
    """List every image object in the bucket, one page at a time.

    Stops after the first short page (fewer keys than ``page_size``) or when
    the provider reports the listing is complete. ``on_page`` is called with
    the running object count after each page.

    Raises:
        StorageListingError on any provider error; a partial listing would
        silently skip real matches, so there is no best-effort mode.
    """
    page_size = page_size or current_app.config["STORAGE_LIST_PAGE_SIZE"]
    bucket = current_app.config["S3_BUCKET_NAME"]
    client = _get_client()

    images = []
    listed = 0
    pages = 0
    token = None
    while True:
        params = {"Bucket": bucket, "MaxKeys": page_size}
        if token:
            params["ContinuationToken"] = token
        try:
            response = client.list_objects_v2(**params)
        except (BotoCoreError, ClientError) as e:
            logger.exception("Storage listing failed after %d objects", listed)
            raise StorageListingError(f"Storage scan error: {e}") from e

        contents = response.get("Contents", [])
        pages += 1
        listed += len(contents)
        for obj in contents:
            key = obj["Key"]
            if key.endswith("/") or not is_image_key(key):
                continue
            images.append(StorageObject(name=key, size=obj.get("Size", 0)))

        if on_page:
            on_page(listed)

        token = response.get("NextContinuationToken")
        if len(contents) < page_size or not response.get("IsTruncated") or not token:
            break

    logger.info(
        "Storage: %d images out of %d objects across %d pages",
        len(images),
        listed,
        pages,
    )
    return images


def get_public_url(storage_key):
    """Return the public CDN URL for a storage key."""
    base = current_app.config["S3_PUBLIC_URL"].rstrip("/")
    return f"{base}/{storage_key}"


def upload(storage_key, data, content_type="image/jpeg"):
    """Upload bytes to the bucket."""
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    client.put_object(
        Bucket=bucket,
        Key=storage_key,
        Body=data,
        ContentType=content_type,
    )
