"""
Attention weighting over observation windows
"""

from regimex.attention.config import AttentionConfig
from regimex.attention.weighter import AttentionWeighter

__all__ = ['AttentionConfig', 'AttentionWeighter']
