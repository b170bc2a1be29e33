"""
voicedesc - accessibility description pipeline engine
"""

__version__ = "1.0.0"
