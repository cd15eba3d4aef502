"""Local and S3 sources of images and destinations for stamped output."""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .error_handling import retry_s3_operation, with_s3_error_mapping
from .image_utils import guess_content_type, is_image_name, join_key, relative_key
from .logging_config import get_logger
from .models import SourceFile
from .protocols import ImageSource, LoggerProtocol, OutputSink, S3ClientProtocol


class LocalImageSource(ImageSource):
    """Image files given as paths; directories are expanded (sorted, non-recursive)."""

    def __init__(self, paths: Iterable[Union[str, Path]]):
        self._paths = [Path(p) for p in paths]
        self._resolved: Dict[str, Path] = {}
        self._logger = get_logger("storage")

    def discover(self) -> List[str]:
        self._resolved.clear()
        names: List[str] = []
        for path in self._paths:
            if path.is_dir():
                candidates = sorted(p for p in path.iterdir() if p.is_file() and is_image_name(p.name))
            elif path.is_file():
                candidates = [path]
            else:
                self._logger.warning(f"Skipping missing path: {path}")
                continue
            for candidate in candidates:
                key = str(candidate)
                if key not in self._resolved:
                    self._resolved[key] = candidate
                    names.append(key)
        self._logger.info(f"Found {len(names)} local files")
        return names

    def read(self, name: str) -> SourceFile:
        path = self._resolved.get(name, Path(name))
        return SourceFile(
            name=path.name,
            data=path.read_bytes(),
            content_type=guess_content_type(path.name),
        )


@retry_s3_operation()
@with_s3_error_mapping
def list_image_keys(s3_client: S3ClientProtocol, bucket: str, prefix: str) -> List[str]:
    """List all image keys under an S3 bucket/prefix."""
    list_prefix = prefix
    if prefix and not prefix.endswith("/"):
        list_prefix = prefix + "/"

    keys = []
    paginator = s3_client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket, Prefix=list_prefix):
        for obj in page.get("Contents", []):
            if is_image_name(obj["Key"]):
                keys.append(obj["Key"])
    return keys


@retry_s3_operation()
@with_s3_error_mapping
def download_object(s3_client: S3ClientProtocol, bucket: str, key: str) -> bytes:
    response = s3_client.get_object(Bucket=bucket, Key=key)
    return response["Body"].read()


@retry_s3_operation()
@with_s3_error_mapping
def upload_object(
    s3_client: S3ClientProtocol, bucket: str, key: str, data: bytes, content_type: str
) -> None:
    s3_client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)


class S3ImageSource(ImageSource):
    """Image objects under an S3 prefix."""

    def __init__(
        self,
        s3_client: S3ClientProtocol,
        bucket: str,
        prefix: str = "",
        logger: Optional[LoggerProtocol] = None,
    ):
        self._s3_client = s3_client
        self._bucket = bucket
        self._prefix = prefix
        self._logger = logger or get_logger("storage")

    def discover(self) -> List[str]:
        self._logger.debug(f"Discovering images in s3://{self._bucket}/{self._prefix}")
        keys = list_image_keys(self._s3_client, self._bucket, self._prefix)
        self._logger.info(f"Found {len(keys)} image objects")
        return keys

    def read(self, name: str) -> SourceFile:
        data = download_object(self._s3_client, self._bucket, name)
        display_name = relative_key(name, self._prefix) or name
        return SourceFile(
            name=display_name, data=data, content_type=guess_content_type(name)
        )


class LocalOutputSink(OutputSink):
    """Writes outputs into a directory, creating it on first use."""

    def __init__(self, directory: Union[str, Path]):
        self._directory = Path(directory)

    def write(self, name: str, data: bytes, content_type: str) -> str:
        target = self._directory / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return str(target)


class S3OutputSink(OutputSink):
    """Uploads outputs under an S3 prefix."""

    def __init__(self, s3_client: S3ClientProtocol, bucket: str, prefix: str = ""):
        self._s3_client = s3_client
        self._bucket = bucket
        self._prefix = prefix

    def write(self, name: str, data: bytes, content_type: str) -> str:
        key = join_key(self._prefix, name)
        upload_object(self._s3_client, self._bucket, key, data, content_type)
        return f"s3://{self._bucket}/{key}"
