"""Factory classes for creating configured service instances."""

from datetime import datetime
from typing import Any, Optional

import boto3

from .compositor import DEFAULT_QUALITY
from .metadata import Clock, MetadataDecoder, MetadataResolver, decode_metadata
from .models import StyleConfig
from .observability import MetricsCollector, StructuredLogger
from .orchestrator import BatchOrchestrator
from .outputs import OutputRegistry
from .protocols import ItemObserver, LoggerProtocol, S3ClientProtocol


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str = "metastamp", level: Optional[int] = None) -> LoggerProtocol:
        """Create a structured logger."""
        return StructuredLogger(name, level)


class S3ClientFactory:
    """Factory for creating S3 client instances."""

    @staticmethod
    def create_s3_client(**kwargs: Any) -> S3ClientProtocol:
        """Create S3 client with optional configuration."""
        session = boto3.Session()
        return session.client("s3", **kwargs)  # type: ignore


class StampingPipelineFactory:
    """Factory for creating a fully wired batch orchestrator."""

    @staticmethod
    def create_pipeline(
        style: Optional[StyleConfig] = None,
        registry: Optional[OutputRegistry] = None,
        logger: Optional[LoggerProtocol] = None,
        observer: Optional[ItemObserver] = None,
        output_format: str = "JPEG",
        quality: int = DEFAULT_QUALITY,
        decoder: MetadataDecoder = decode_metadata,
        clock: Clock = datetime.now,
        metrics_collector: Optional[MetricsCollector] = None,
    ) -> BatchOrchestrator:
        """Create an orchestrator with default collaborators where none are given."""
        if logger is None:
            logger = LoggerFactory.create_logger("metastamp.orchestrator")

        resolver = MetadataResolver(decoder=decoder, clock=clock)

        return BatchOrchestrator(
            style=style,
            registry=registry,
            resolver=resolver,
            logger=logger,
            observer=observer,
            output_format=output_format,
            quality=quality,
            metrics_collector=metrics_collector,
        )
