"""
Cultural content curation with multi-party validation.
"""

from .core.config import VERSION

__version__ = VERSION
