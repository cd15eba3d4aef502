"""Testing utilities and fakes for MetaStamp."""

from .fakes import (
    FakeS3Client,
    FakeLogger,
    FixedClock,
    S3Object,
    S3Bucket,
    create_corrupt_image,
    create_test_image,
    setup_test_s3_environment,
)

__all__ = [
    "FakeS3Client",
    "FakeLogger",
    "FixedClock",
    "S3Object",
    "S3Bucket",
    "create_corrupt_image",
    "create_test_image",
    "setup_test_s3_environment",
]
