"""OpenSubtitles REST API proxy with CORS and a shared login token"""

__version__ = "1.0.0"
__description__ = "CORS-friendly proxy for the OpenSubtitles REST API that keeps credentials server-side"
