"""External identity login orchestration for FastAPI applications."""

__version__ = "1.0.0"
