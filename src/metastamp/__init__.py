"""MetaStamp: stamp the capture timestamp of photos onto the photos themselves."""

__version__ = "0.1.0"
