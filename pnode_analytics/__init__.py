"""
pNode Analytics
Indexing, alerting and quant analytics for a fleet of pNodes.
"""

__version__ = "1.0.0"
