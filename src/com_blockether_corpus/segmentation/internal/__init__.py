from .ContentTagging import detect_content_type, extract_keywords
from .TokenEstimation import estimate_tokens

__all__ = ["detect_content_type", "extract_keywords", "estimate_tokens"]
