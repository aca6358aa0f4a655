from .guidance_logger import GuidanceLogger, NumpyEncoder

__all__ = ["GuidanceLogger", "NumpyEncoder"]
